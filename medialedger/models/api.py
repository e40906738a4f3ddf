"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

# Largest amount a single credit request may move.
MAX_CREDIT_AMOUNT = 1_000_000


def require_reason(v: str) -> str:
    """Strip a ledger reason and reject it when nothing is left."""
    v = v.strip()
    if not v:
        raise ValueError("Reason cannot be blank")
    return v


class AccountStatus(str, Enum):
    """Account status enumeration."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class AccountRole(str, Enum):
    """Account role enumeration."""

    USER = "user"
    ADMIN = "admin"


class Currency(str, Enum):
    """The two independent credit pools."""

    IMAGE = "image"
    VIDEO = "video"


class EntryKind(str, Enum):
    """Ledger entry kind enumeration."""

    GRANT = "grant"
    DEDUCT = "deduct"
    SPEND = "spend"
    ADJUST = "adjust"
    STATUS_CHANGE = "status-change"


class ContentType(str, Enum):
    """Generated media content type."""

    IMAGE = "image"
    VIDEO = "video"


class CreditAction(str, Enum):
    """Admin credit mutation action."""

    GRANT = "grant"
    DEDUCT = "deduct"


class StatusAction(str, Enum):
    """Account status transition action."""

    SUSPEND = "suspend"
    UNSUSPEND = "unsuspend"
    DELETE = "delete"
    REACTIVATE = "reactivate"


class DeletionReason(str, Enum):
    """Why an asset was purged."""

    EXPIRED = "expired"
    OWNER = "owner"


class SweepStatus(str, Enum):
    """Outcome of a sweep run."""

    COMPLETED = "completed"
    FAILED = "failed"


# ============================================================================
# Balance & Ledger Models
# ============================================================================


class BalanceResponse(BaseModel):
    """GET /v1/accounts/{account_id}/balance response."""

    account_id: str
    image_credits: int
    video_credits: int
    unlimited: bool = False


class SpendRequest(BaseModel):
    """POST /v1/accounts/{account_id}/credits request body (self-service spend)."""

    currency: Currency
    amount: int = Field(..., gt=0, le=MAX_CREDIT_AMOUNT)
    reason: str = Field("Generation", min_length=1, max_length=500)

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str) -> str:
        return require_reason(v)


class LedgerEntryResponse(BaseModel):
    """Single audit log entry."""

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
    status_from: AccountStatus | None = None
    status_to: AccountStatus | None = None
    created_at: datetime


class LedgerHistoryResponse(BaseModel):
    """Paginated audit history for one account."""

    account_id: str
    entries: list[LedgerEntryResponse]
    limit: int
    offset: int


class CreditMutationResponse(BaseModel):
    """Result of a grant, deduct, spend or set operation."""

    account_id: str
    currency: Currency
    balance: int
    entry: LedgerEntryResponse


# ============================================================================
# Admin Models
# ============================================================================


class AdminCreditRequest(BaseModel):
    """POST /admin/accounts/{account_id}/credits request body."""

    currency: Currency
    amount: int = Field(..., gt=0, le=MAX_CREDIT_AMOUNT)
    action: CreditAction
    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str) -> str:
        return require_reason(v)


class AdminSetCreditsRequest(BaseModel):
    """PUT /admin/accounts/{account_id}/credits request body."""

    currency: Currency
    amount: int = Field(..., ge=0, le=MAX_CREDIT_AMOUNT)
    reason: str = Field("Admin credit adjustment", min_length=1, max_length=500)

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str) -> str:
        return require_reason(v)


class StatusChangeRequest(BaseModel):
    """PUT /admin/accounts/{account_id}/status request body."""

    action: StatusAction
    reason: str | None = Field(None, max_length=500)

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str | None) -> str | None:
        """Treat blank reasons as missing."""
        if v is None:
            return None
        v = v.strip()
        return v or None


class AccountResponse(BaseModel):
    """Account snapshot."""

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


class AccountListResponse(BaseModel):
    """Paginated account list response."""

    accounts: list[AccountResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class StatsResponse(BaseModel):
    """GET /admin/stats response."""

    total_accounts: int
    active_accounts: int
    suspended_accounts: int
    deleted_accounts: int
    accounts_without_credits: int
    image_credits_in_circulation: int
    video_credits_in_circulation: int
    total_assets: int
    expired_assets: int


# ============================================================================
# Media Asset Models
# ============================================================================


class AssetRegisterRequest(BaseModel):
    """POST /v1/assets request body."""

    content_type: ContentType
    blob_key: str = Field(..., min_length=1, max_length=1024)


class AssetResponse(BaseModel):
    """Media asset snapshot."""

    asset_id: UUID
    owner_account_id: str
    content_type: ContentType
    blob_key: str
    created_at: datetime
    expires_at: datetime
    extension_count: int
    last_extended_at: datetime | None
    expired: bool


class AssetListResponse(BaseModel):
    """Assets owned by one account."""

    account_id: str
    assets: list[AssetResponse]


class ExtendResponse(BaseModel):
    """POST /v1/assets/{asset_id}/extend response. remaining=None means unlimited."""

    asset_id: UUID
    new_expires_at: datetime
    extension_count: int
    remaining: int | None


class SweepResponse(BaseModel):
    """POST /admin/retention/sweep response."""

    run_id: UUID
    scanned_count: int
    deleted_count: int
    error_count: int


class SweepRunResponse(BaseModel):
    """Recorded sweep run."""

    run_id: UUID
    started_at: datetime
    finished_at: datetime | None
    scanned_count: int
    deleted_count: int
    error_count: int
    status: SweepStatus
    error: str | None


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    version: str
    timestamp: datetime
