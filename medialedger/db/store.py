"""
LedgerStore - the single persistence dependency of the core services.

Constructed once at startup and injected into CreditLedger, AccountLifecycle,
AccountDirectory and RetentionManager.

Serialization model for mutations on one key (an account or an asset):
1. In-process KeyedLock - concurrent tasks in this worker queue up
2. SELECT ... FOR UPDATE inside the transaction - other workers queue up
3. Account.version checked on UPDATE - a lost race raises StaleDataError,
   the whole unit is rolled back and re-run from a fresh read
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from structlog import get_logger

from medialedger.db.locks import KeyedLock
from medialedger.exceptions import ConcurrencyError
from medialedger.observability.metrics import metrics

logger = get_logger(__name__)

T = TypeVar("T")


def account_key(account_id: str) -> str:
    """Serialization key for an account."""
    return f"account:{account_id}"


def asset_key(asset_id: UUID) -> str:
    """Serialization key for a media asset."""
    return f"asset:{asset_id}"


class LedgerStore:
    """Session factory plus per-key serialization and optimistic retry."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_retries: int = 5,
    ) -> None:
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1: {max_retries}")
        self._session_factory = session_factory
        self._locks = KeyedLock()
        self.max_retries = max_retries

    @property
    def locks(self) -> KeyedLock:
        return self._locks

    @asynccontextmanager
    async def read_session(self) -> AsyncIterator[AsyncSession]:
        """Session for read-only queries. Nothing is committed."""
        async with self._session_factory() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Unserialized transaction for rows no other writer touches."""
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    @asynccontextmanager
    async def unit_of_work(self, key: str) -> AsyncIterator[AsyncSession]:
        """
        One transaction serialized on key.

        Commits when the block exits normally, rolls back on any exception.
        """
        async with self._locks.hold(key):
            async with self._session_factory() as session:
                async with session.begin():
                    yield session

    async def run_serialized(
        self, key: str, operation: Callable[[AsyncSession], Awaitable[T]]
    ) -> T:
        """
        Run operation inside unit_of_work(key), retrying on version conflicts.

        operation must re-read everything it depends on from the session it is
        given; it may be invoked more than once.

        Raises:
            ConcurrencyError: Conflict persisted for max_retries attempts
        """
        for attempt in range(1, self.max_retries + 1):
            try:
                async with self.unit_of_work(key) as session:
                    return await operation(session)
            except StaleDataError as exc:
                metrics.ledger_conflicts_total.inc()
                logger.warning(
                    "ledger_store_version_conflict",
                    key=key,
                    attempt=attempt,
                    max_retries=self.max_retries,
                    error=str(exc),
                )
        logger.error("ledger_store_conflict_exhausted", key=key, attempts=self.max_retries)
        raise ConcurrencyError(key)
