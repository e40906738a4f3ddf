"""
Service container - wires the core services around one LedgerStore.

Built once at startup and stored on app.state.services.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medialedger.config import Settings
from medialedger.db.store import LedgerStore
from medialedger.services.accounts import AccountDirectory
from medialedger.services.admin_gateway import AdminGateway
from medialedger.services.audit import AuditLog
from medialedger.services.ledger import CreditLedger
from medialedger.services.lifecycle import AccountLifecycle
from medialedger.services.retention import RetentionManager, RetentionPolicy
from medialedger.services.scheduler import SweepScheduler
from medialedger.services.storage import StorageDeleter, create_storage_deleter


@dataclass(frozen=True)
class Services:
    """Everything the API layer talks to."""

    store: LedgerStore
    audit: AuditLog
    directory: AccountDirectory
    ledger: CreditLedger
    lifecycle: AccountLifecycle
    retention: RetentionManager
    gateway: AdminGateway
    scheduler: SweepScheduler


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    storage: StorageDeleter | None = None,
) -> Services:
    """Construct the service graph from settings."""
    store = LedgerStore(session_factory, max_retries=settings.ledger_max_retries)
    audit = AuditLog(store)
    retention = RetentionManager(
        store,
        storage or create_storage_deleter(settings),
        policy=RetentionPolicy.from_settings(settings),
    )
    return Services(
        store=store,
        audit=audit,
        directory=AccountDirectory(store, superadmin_email=settings.superadmin_email),
        ledger=CreditLedger(store, audit),
        lifecycle=AccountLifecycle(store, audit),
        retention=retention,
        gateway=AdminGateway(superadmin_email=settings.superadmin_email),
        scheduler=SweepScheduler(retention, settings.sweep_interval_seconds),
    )
