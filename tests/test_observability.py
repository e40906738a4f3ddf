"""
Tests for the logging processors and the ledger span helper.

Spans go to an in-memory exporter; the global tracer provider is never
touched.
"""

import logging
from datetime import timedelta
from unittest.mock import MagicMock, patch
from uuid import UUID

import pytest
import structlog
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from medialedger.config import Settings
from medialedger.exceptions import AccountNotFoundError
from medialedger.models.api import ContentType, Currency
from medialedger.models.domain import CreditDelta
from medialedger.observability.logging import (
    add_trace_context,
    build_processors,
    log_context,
    render_ledger_values,
    service_context,
    setup_logging,
)
from medialedger.observability.tracing import (
    build_resource,
    ledger_span,
    set_ledger_attributes,
    setup_tracing,
)
from medialedger.services.scheduler import SweepScheduler

VALID_DB = "postgresql+asyncpg://u:p@localhost:5432/ledger"
ASSET_ID = UUID("7d1c2f3e-0000-4000-8000-000000000001")


@pytest.fixture
def provider() -> TracerProvider:
    return TracerProvider()


@pytest.fixture
def exporter(provider: TracerProvider):
    exporter = InMemorySpanExporter()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    with patch(
        "medialedger.observability.tracing.get_tracer",
        return_value=provider.get_tracer("test"),
    ):
        yield exporter


def finished(exporter: InMemorySpanExporter, name: str):
    spans = [s for s in exporter.get_finished_spans() if s.name == name]
    assert spans, f"no span named {name}"
    return spans[-1]


def make_settings(**overrides) -> Settings:
    return Settings(database_url=VALID_DB, auth_jwt_secret="x" * 32, **overrides)


# ============================================================================
# Span helper
# ============================================================================


class TestLedgerSpan:
    def test_attributes_are_prefixed_and_flattened(self, exporter):
        with ledger_span(
            "ledger.grant", account_id="user-1", currency=Currency.VIDEO, asset_id=ASSET_ID
        ):
            pass

        span = finished(exporter, "ledger.grant")
        assert span.attributes["ledger.account_id"] == "user-1"
        assert span.attributes["ledger.currency"] == "video"
        assert span.attributes["ledger.asset_id"] == str(ASSET_ID)
        assert span.attributes["ledger.outcome"] == "success"
        assert span.status.status_code == StatusCode.UNSET

    def test_none_values_skipped(self):
        span = MagicMock()

        set_ledger_attributes(span, remaining=None, extension_count=2)

        span.set_attribute.assert_called_once_with("ledger.extension_count", 2)

    def test_domain_rejection_keeps_status_unset(self, exporter):
        with pytest.raises(AccountNotFoundError):
            with ledger_span("ledger.deduct", account_id="ghost"):
                raise AccountNotFoundError("ghost")

        span = finished(exporter, "ledger.deduct")
        assert span.attributes["ledger.outcome"] == "rejected"
        assert span.attributes["ledger.error"] == "AccountNotFoundError"
        assert span.status.status_code == StatusCode.UNSET

    def test_unexpected_error_marks_span(self, exporter):
        with pytest.raises(RuntimeError):
            with ledger_span("retention.sweep"):
                raise RuntimeError("db down")

        span = finished(exporter, "retention.sweep")
        assert span.status.status_code == StatusCode.ERROR
        assert span.attributes["ledger.outcome"] == "error"
        assert [e.name for e in span.events] == ["exception"]


class TestServiceSpans:
    async def test_spend_span(self, exporter, ledger, user_account):
        await ledger.spend("user-1", CreditDelta(Currency.IMAGE, 3, "Generation"))

        span = finished(exporter, "ledger.spend")
        assert span.attributes["ledger.account_id"] == "user-1"
        assert span.attributes["ledger.currency"] == "image"
        assert span.attributes["ledger.kind"] == "spend"
        assert span.attributes["ledger.balance_after"] == 7

    async def test_extend_span(self, exporter, retention, user_account):
        asset = await retention.register("user-1", ContentType.VIDEO, "v.mp4")

        await retention.extend(asset.asset_id, user_account)

        span = finished(exporter, "retention.extend")
        assert span.attributes["ledger.content_type"] == "video"
        assert span.attributes["ledger.extension_count"] == 1
        assert span.attributes["ledger.remaining"] == 0

    async def test_sweep_span_counts(self, exporter, retention, storage, clock, user_account):
        storage.put("a.png")
        await retention.register("user-1", ContentType.IMAGE, "a.png")
        clock.advance(timedelta(days=15))

        result = await retention.sweep()

        span = finished(exporter, "retention.sweep")
        assert span.attributes["ledger.run_id"] == str(result.run_id)
        assert span.attributes["ledger.scanned_count"] == 1
        assert span.attributes["ledger.deleted_count"] == 1
        assert span.attributes["ledger.error_count"] == 0

    async def test_scheduler_tick_wraps_sweep(self, exporter, retention):
        scheduler = SweepScheduler(retention, interval_seconds=60)

        await scheduler.run_once()

        tick = finished(exporter, "scheduler.tick")
        sweep = finished(exporter, "retention.sweep")
        assert tick.attributes["ledger.trigger"] == "scheduler"
        assert tick.attributes["ledger.deleted_count"] == 0
        assert sweep.parent.span_id == tick.context.span_id


class TestTracingSetup:
    def test_resource_from_settings(self):
        config = make_settings(service_name="ledger-test", environment="staging")

        attributes = build_resource(config).attributes

        assert attributes["service.name"] == "ledger-test"
        assert attributes["service.version"] == config.api_version
        assert attributes["deployment.environment"] == "staging"
        assert attributes["ledger.storage_backend"] == "filesystem"

    def test_disabled_tracing_installs_nothing(self):
        assert setup_tracing(make_settings(tracing_enabled=False)) is None


# ============================================================================
# Logging processors
# ============================================================================


class TestLoggingProcessors:
    def test_service_context(self):
        processor = service_context(make_settings(environment="staging"))

        event = processor(None, "info", {"event": "credits_spent"})

        assert event["environment"] == "staging"
        assert event["service"] == "media-ledger-api"

    def test_no_trace_ids_outside_span(self):
        assert "trace_id" not in add_trace_context(None, "info", {"event": "x"})

    def test_trace_ids_inside_span(self, provider):
        tracer = provider.get_tracer("test")

        with tracer.start_as_current_span("ledger.grant") as span:
            event = add_trace_context(None, "info", {"event": "credits_granted"})

        assert event["trace_id"] == format(span.get_span_context().trace_id, "032x")
        assert event["span_id"] == format(span.get_span_context().span_id, "016x")

    def test_domain_values_flattened(self):
        event = render_ledger_values(
            None,
            "info",
            {"event": "asset_extended", "currency": Currency.IMAGE, "asset_id": ASSET_ID},
        )

        assert event["currency"] == "image"
        assert event["asset_id"] == str(ASSET_ID)

    def test_renderer_follows_format(self):
        json_chain = build_processors(make_settings(log_format="json"))
        console_chain = build_processors(make_settings(log_format="console"))

        assert isinstance(json_chain[-1], structlog.processors.JSONRenderer)
        assert isinstance(console_chain[-1], structlog.dev.ConsoleRenderer)

    def test_noisy_loggers_quieted(self):
        setup_logging(make_settings(log_level="INFO"))

        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


class TestLogContext:
    def test_binds_and_restores(self):
        with log_context(request_id="outer"):
            with log_context(request_id="inner", trigger="scheduler"):
                bound = structlog.contextvars.get_contextvars()
                assert (bound["request_id"], bound["trigger"]) == ("inner", "scheduler")
            bound = structlog.contextvars.get_contextvars()
            assert bound["request_id"] == "outer"
            assert "trigger" not in bound

        assert "request_id" not in structlog.contextvars.get_contextvars()
