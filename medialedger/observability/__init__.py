"""
Observability module - Logging, Metrics, and Tracing.
"""

from medialedger.observability.logging import get_logger, log_context, setup_logging
from medialedger.observability.metrics import metrics
from medialedger.observability.tracing import get_tracer, ledger_span, setup_tracing

__all__ = [
    "get_logger",
    "get_tracer",
    "ledger_span",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
