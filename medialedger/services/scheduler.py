"""
Sweep Scheduler - runs the retention sweep on a fixed interval.

Runs as a background asyncio task for the lifetime of the application.
A failed tick is logged and the loop carries on.
"""

import asyncio

from structlog import get_logger

from medialedger.models.domain import SweepResult
from medialedger.observability.logging import log_context
from medialedger.observability.tracing import ledger_span, set_ledger_attributes
from medialedger.services.retention import RetentionManager

logger = get_logger(__name__)


class SweepScheduler:
    """Fire-and-forget periodic trigger for RetentionManager.sweep."""

    def __init__(self, retention: RetentionManager, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive: {interval_seconds}")
        self.retention = retention
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> SweepResult | None:
        """One tick. Returns None if the sweep raised."""
        try:
            with log_context(trigger="scheduler"), ledger_span(
                "scheduler.tick", trigger="scheduler", interval_seconds=self.interval_seconds
            ) as span:
                result = await self.retention.sweep()
                set_ledger_attributes(span, deleted_count=result.deleted_count)
                return result
        except Exception:
            logger.exception("scheduled_sweep_failed")
            return None

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="retention-sweep")
        logger.info("sweep_scheduler_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("sweep_scheduler_stopped")
