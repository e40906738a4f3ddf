"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from medialedger.models.api import (
    AccountRole,
    AccountStatus,
    ContentType,
    Currency,
    EntryKind,
    SweepStatus,
)


@dataclass(frozen=True)
class Principal:
    """Identity of the caller as supplied by the authenticator."""

    account_id: str
    email: str
    role: AccountRole = AccountRole.USER
    display_name: str | None = None

    def __post_init__(self) -> None:
        """Validate principal fields."""
        if not self.account_id:
            raise ValueError("account_id cannot be empty")
        if not self.email:
            raise ValueError("email cannot be empty")


@dataclass(frozen=True)
class CreditDelta:
    """
    Typed balance update - the closed set of fields a ledger call may touch.

    Amount sign rules are enforced by the ledger operation, not here,
    since set_exact accepts zero while grant/deduct require a positive amount.
    """

    currency: Currency
    amount: int
    reason: str

    def __post_init__(self) -> None:
        """Validate delta fields."""
        if not isinstance(self.currency, Currency):
            object.__setattr__(self, "currency", Currency(self.currency))
        if not self.reason or not self.reason.strip():
            raise ValueError("Reason cannot be empty")


@dataclass(frozen=True)
class AccountData:
    """Immutable account data snapshot."""

    account_id: str
    email: str
    display_name: str | None
    role: AccountRole
    image_credits: int
    video_credits: int
    total_granted: int
    total_used: int
    status: AccountStatus
    status_reason: str | None
    status_actor_id: str | None
    status_changed_at: datetime | None
    created_at: datetime
    last_login_at: datetime | None

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    def balance(self, currency: Currency) -> int:
        """Balance for one currency."""
        if currency == Currency.VIDEO:
            return self.video_credits
        return self.image_credits


@dataclass(frozen=True)
class BalanceData:
    """Balances for both currencies."""

    account_id: str
    image_credits: int
    video_credits: int
    unlimited: bool


@dataclass(frozen=True)
class AuditRecord:
    """Audit entry before persistence - immutable intent."""

    kind: EntryKind
    actor_id: str
    currency: Currency | None
    amount: int
    balance_before: int
    balance_after: int
    reason: str
    status_from: AccountStatus | None = None
    status_to: AccountStatus | None = None

    def __post_init__(self) -> None:
        """Validate audit record constraints."""
        if self.kind == EntryKind.STATUS_CHANGE:
            if self.currency is not None:
                raise ValueError("Status events carry no currency")
            if self.amount != 0 or self.balance_before != 0 or self.balance_after != 0:
                raise ValueError("Status events carry no amount")
        elif self.currency is None:
            raise ValueError(f"{self.kind.value} entries require a currency")
        if self.balance_after < 0:
            raise ValueError(f"Balance cannot be negative: {self.balance_after}")


@dataclass(frozen=True)
class LedgerEntryData:
    """Immutable ledger entry after persistence."""

    entry_id: UUID
    account_id: str
    actor_id: str
    kind: EntryKind
    currency: Currency | None
    amount: int
    balance_before: int
    balance_after: int
    reason: str
    sequence: int
    status_from: AccountStatus | None
    status_to: AccountStatus | None
    created_at: datetime


@dataclass(frozen=True)
class AssetData:
    """Immutable media asset snapshot."""

    asset_id: UUID
    owner_account_id: str
    content_type: ContentType
    blob_key: str
    created_at: datetime
    base_ttl: timedelta
    expires_at: datetime
    extension_count: int
    last_extended_at: datetime | None

    def is_expired(self, now: datetime) -> bool:
        """An asset is eligible for sweep once expires_at <= now."""
        return self.expires_at <= now


@dataclass(frozen=True)
class ExtensionResult:
    """Outcome of a successful extend call. remaining=None means unlimited."""

    asset_id: UUID
    new_expires_at: datetime
    extension_count: int
    remaining: int | None


@dataclass(frozen=True)
class SweepResult:
    """Aggregated outcome of one sweep invocation."""

    run_id: UUID
    scanned_count: int
    deleted_count: int
    error_count: int


@dataclass(frozen=True)
class SweepRunData:
    """Recorded sweep run."""

    run_id: UUID
    started_at: datetime
    finished_at: datetime | None
    scanned_count: int
    deleted_count: int
    error_count: int
    status: SweepStatus
    error: str | None


@dataclass(frozen=True)
class LedgerStats:
    """Aggregate figures for the admin dashboard."""

    total_accounts: int
    active_accounts: int
    suspended_accounts: int
    deleted_accounts: int
    accounts_without_credits: int
    image_credits_in_circulation: int
    video_credits_in_circulation: int
    total_assets: int
    expired_assets: int
