"""
Metrics Collection with Prometheus.

Exposes ledger, lifecycle and retention metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from medialedger.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    KIND = "kind"
    CURRENCY = "currency"
    OUTCOME = "outcome"
    ACTION = "action"
    CONTENT_TYPE = "content_type"
    ERROR_TYPE = "error_type"


class LedgerMetrics:
    """
    Centralized metrics for the Media Ledger API.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Ledger operations (rate, amount, outcome)
    - Status transitions
    - Asset extensions and sweeps
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info("ledger_service", "Service information")
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "ledger_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "ledger_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "ledger_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Ledger Metrics
        # ====================================================================
        self.ledger_operations_total = Counter(
            "ledger_operations_total",
            "Ledger mutations by kind, currency and outcome",
            [MetricLabels.KIND, MetricLabels.CURRENCY, MetricLabels.OUTCOME],
        )

        self.ledger_amount = Histogram(
            "ledger_amount",
            "Absolute credit amounts moved per successful mutation",
            [MetricLabels.KIND],
            buckets=(1, 2, 5, 10, 25, 50, 100, 250, 500, 1000),
        )

        self.ledger_conflicts_total = Counter(
            "ledger_version_conflicts_total",
            "Optimistic concurrency conflicts that forced a retry",
        )

        # ====================================================================
        # Lifecycle Metrics
        # ====================================================================
        self.status_transitions_total = Counter(
            "ledger_status_transitions_total",
            "Account status transitions by action and outcome",
            [MetricLabels.ACTION, MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Retention Metrics
        # ====================================================================
        self.asset_extensions_total = Counter(
            "ledger_asset_extensions_total",
            "Asset extension attempts",
            [MetricLabels.CONTENT_TYPE, MetricLabels.OUTCOME],
        )

        self.sweep_assets_deleted_total = Counter(
            "ledger_sweep_assets_deleted_total",
            "Assets purged by the retention sweep",
        )

        self.sweep_errors_total = Counter(
            "ledger_sweep_errors_total",
            "Per-asset failures during the retention sweep",
        )

        self.sweep_duration_seconds = Histogram(
            "ledger_sweep_duration_seconds",
            "Retention sweep duration in seconds",
            buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0),
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "ledger_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_ledger_operation(
        self, kind: str, currency: str, outcome: str, amount: int = 0
    ) -> None:
        """Record a ledger mutation attempt."""
        self.ledger_operations_total.labels(kind=kind, currency=currency, outcome=outcome).inc()
        if outcome == "success" and amount:
            self.ledger_amount.labels(kind=kind).observe(abs(amount))

    def record_status_transition(self, action: str, outcome: str) -> None:
        """Record an account status transition attempt."""
        self.status_transitions_total.labels(action=action, outcome=outcome).inc()

    def record_extension(self, content_type: str, outcome: str) -> None:
        """Record an asset extension attempt."""
        self.asset_extensions_total.labels(content_type=content_type, outcome=outcome).inc()

    def record_sweep(self, deleted: int, errors: int, duration: float) -> None:
        """Record one sweep run."""
        self.sweep_assets_deleted_total.inc(deleted)
        self.sweep_errors_total.inc(errors)
        self.sweep_duration_seconds.observe(duration)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = LedgerMetrics()
