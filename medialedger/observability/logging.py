"""
Structured Logging with Structlog.

Every entry is an event name plus typed context. Request ids and sweep
triggers arrive through contextvars, and the ids of the active OpenTelemetry
span are attached so a log line can be found from its trace.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

import structlog
from opentelemetry import trace
from structlog.types import EventDict, Processor

from medialedger.config import Settings, settings

# Held at WARNING unless the service itself runs at DEBUG
NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "httpx", "httpcore")


def service_context(config: Settings = settings) -> Processor:
    """Processor stamping service, version and environment on each entry."""

    def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", config.service_name)
        event_dict.setdefault("version", config.api_version)
        event_dict.setdefault("environment", config.environment)
        return event_dict

    return add_service_context


def add_trace_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Attach trace_id and span_id when a span is active."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        event_dict["trace_id"] = format(span_context.trace_id, "032x")
        event_dict["span_id"] = format(span_context.span_id, "016x")
    return event_dict


def render_ledger_values(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Flatten domain values before rendering.

    Currency, EntryKind and the other str enums log by value, asset and run
    ids as plain strings, timestamps as ISO 8601.
    """
    for key, value in list(event_dict.items()):
        if isinstance(value, Enum):
            event_dict[key] = value.value
        elif isinstance(value, UUID):
            event_dict[key] = str(value)
        elif isinstance(value, datetime):
            event_dict[key] = value.isoformat()
    return event_dict


def build_processors(config: Settings = settings) -> list[Processor]:
    debug = config.log_level.upper() == "DEBUG"
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        service_context(config),
        add_trace_context,
        render_ledger_values,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if debug:
        processors.append(structlog.processors.ExceptionRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)

    if config.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    return processors


def setup_logging(config: Settings = settings) -> None:
    """
    Route structlog through the stdlib root logger.

    JSON output looks like:
    {
        "event": "credits_spent",
        "level": "info",
        "timestamp": "2026-10-19T12:00:00.123456Z",
        "logger": "medialedger.services.ledger",
        "service": "media-ledger-api",
        "version": "0.1.0",
        "environment": "production",
        "request_id": "3f6c...",
        "trace_id": "4bf92f3577b34da6a3ce929d0e0e4736",
        "account_id": "user-1",
        "currency": "image",
        ...
    }
    """
    level = getattr(logging, config.log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    if level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=build_processors(config),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)  # type: ignore[no-any-return]


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """
    Bind context for every entry logged inside the block.

    A key already bound by an enclosing block gets its old value back on exit.

    Usage:
        with log_context(request_id=request_id):
            logger.info("credits_spent", account_id=account_id)
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
