"""
Distributed Tracing with OpenTelemetry.

HTTP requests and SQL statements are traced by the instrumentors. Ledger
mutations and retention sweeps open their own spans through ``ledger_span``
so a trace shows which account, currency and asset counts were involved.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode, Tracer

from medialedger.config import Settings, settings
from medialedger.exceptions import LedgerError

TRACER_NAME = "medialedger"
ATTRIBUTE_PREFIX = "ledger."


def build_resource(config: Settings = settings) -> Resource:
    """Describe this deployment for the collector."""
    return Resource.create(
        {
            "service.name": config.service_name,
            "service.version": config.api_version,
            "service.namespace": TRACER_NAME,
            "deployment.environment": config.environment,
            "ledger.storage_backend": config.storage_backend,
            "ledger.sweep_enabled": config.sweep_enabled,
        }
    )


def setup_tracing(config: Settings = settings) -> TracerProvider | None:
    """
    Install a TracerProvider exporting over OTLP.

    Returns the provider, or None when tracing is disabled.
    """
    if not config.tracing_enabled:
        return None

    provider = TracerProvider(resource=build_resource(config))
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=config.otlp_endpoint, insecure=config.otlp_insecure)
        )
    )
    trace.set_tracer_provider(provider)
    return provider


def instrument_fastapi(app: Any) -> None:
    """Instrument the FastAPI app. Must be called after app creation."""
    if not settings.tracing_enabled:
        return

    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine: Any) -> None:
    """Instrument an async engine's sync core for query spans."""
    if not settings.tracing_enabled:
        return

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def get_tracer(name: str = TRACER_NAME) -> Tracer:
    return trace.get_tracer(name)


def set_ledger_attributes(span: Span, **attributes: Any) -> None:
    """
    Set ``ledger.``-prefixed attributes on a span.

    None values are skipped, enums are recorded by value and anything that
    isn't a primitive (UUIDs, datetimes) is recorded as a string.
    """
    for key, value in attributes.items():
        if value is None:
            continue
        if isinstance(value, Enum):
            value = value.value
        if not isinstance(value, (str, int, float, bool)):
            value = str(value)
        span.set_attribute(f"{ATTRIBUTE_PREFIX}{key}", value)


@contextmanager
def ledger_span(name: str, **attributes: Any) -> Iterator[Span]:
    """
    Open a span around a ledger or retention operation.

    Usage:
        with ledger_span("ledger.spend", account_id="user-1", currency=Currency.IMAGE) as span:
            entry = await ...
            set_ledger_attributes(span, balance_after=entry.balance_after)

    Domain rejections (LedgerError) mark the span with ``ledger.outcome`` and
    the error type but leave its status unset. Any other exception marks
    the span as an error.
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(
        name, record_exception=False, set_status_on_exception=False
    ) as span:
        set_ledger_attributes(span, **attributes)
        try:
            yield span
        except LedgerError as exc:
            set_ledger_attributes(span, outcome="rejected", error=type(exc).__name__)
            raise
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            set_ledger_attributes(span, outcome="error", error=type(exc).__name__)
            raise
        set_ledger_attributes(span, outcome="success")
