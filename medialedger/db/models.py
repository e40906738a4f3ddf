"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from medialedger.models.api import (
    AccountRole,
    AccountStatus,
    ContentType,
    Currency,
    DeletionReason,
    EntryKind,
    SweepStatus,
)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """
    Timezone-aware timestamp stored in UTC.

    Backends without native timezone support hand back naive values;
    those are always UTC here, so tzinfo is reattached on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def _enum(enum_cls: type[Enum], name: str, length: int = 20) -> SQLEnum:
    """String-backed enum column storing the enum values."""
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=length,
        values_callable=lambda x: [e.value for e in x],
    )


class Account(Base):
    """
    ORM model for accounts table.

    Balances are mutated only by CreditLedger, status only by AccountLifecycle.
    Rows are never physically removed - delete is a soft status.
    """

    __tablename__ = "accounts"

    # Primary Key - opaque id supplied by the authenticator
    id: Mapped[str] = mapped_column(String(128), primary_key=True)

    # Identity fields
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[AccountRole] = mapped_column(
        _enum(AccountRole, "account_role"), nullable=False, default=AccountRole.USER
    )

    # Balances
    image_credits: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    video_credits: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_granted: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Status
    status: Mapped[AccountStatus] = mapped_column(
        _enum(AccountStatus, "account_status"), nullable=False, default=AccountStatus.ACTIVE
    )
    status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status_actor_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status_changed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Per-account audit ordering
    ledger_sequence: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Optimistic concurrency counter (checked on every UPDATE)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now
    )
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("image_credits >= 0", name="ck_image_credits_non_negative"),
        CheckConstraint("video_credits >= 0", name="ck_video_credits_non_negative"),
        CheckConstraint("total_granted >= 0", name="ck_total_granted_non_negative"),
        CheckConstraint("total_used >= 0", name="ck_total_used_non_negative"),
        Index("idx_accounts_email", "email"),
        Index("idx_accounts_status", "status"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Account(id={self.id}, role={self.role}, status={self.status}, "
            f"image={self.image_credits}, video={self.video_credits})>"
        )


class LedgerEntry(Base):
    """
    ORM model for ledger_entries table.

    Immutable append-only log of every balance and status change.
    """

    __tablename__ = "ledger_entries"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    account_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False
    )
    actor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    kind: Mapped[EntryKind] = mapped_column(_enum(EntryKind, "entry_kind"), nullable=False)
    currency: Mapped[Currency | None] = mapped_column(
        _enum(Currency, "credit_currency", length=10), nullable=True
    )

    # Signed amount and balance snapshots (denormalized for auditing)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    reason: Mapped[str] = mapped_column(Text, nullable=False)
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Status events only
    status_from: Mapped[AccountStatus | None] = mapped_column(
        _enum(AccountStatus, "account_status"), nullable=True
    )
    status_to: Mapped[AccountStatus | None] = mapped_column(
        _enum(AccountStatus, "account_status"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("balance_before >= 0", name="ck_entry_balance_before_non_negative"),
        CheckConstraint("balance_after >= 0", name="ck_entry_balance_after_non_negative"),
        UniqueConstraint("account_id", "sequence", name="uq_ledger_entry_sequence"),
        Index("idx_ledger_entries_account_created", "account_id", "created_at"),
        Index("idx_ledger_entries_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<LedgerEntry(id={self.id}, account_id={self.account_id}, kind={self.kind}, "
            f"amount={self.amount}, balance_after={self.balance_after})>"
        )


class MediaAsset(Base):
    """
    ORM model for media_assets table.

    expires_at only advances through RetentionManager.extend.
    """

    __tablename__ = "media_assets"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    owner_account_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False
    )
    content_type: Mapped[ContentType] = mapped_column(
        _enum(ContentType, "content_type", length=10), nullable=False
    )
    blob_key: Mapped[str] = mapped_column(String(1024), nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    base_ttl_seconds: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    extension_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_extended_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("extension_count >= 0", name="ck_extension_count_non_negative"),
        CheckConstraint("base_ttl_seconds > 0", name="ck_base_ttl_positive"),
        Index("idx_media_assets_expires_at", "expires_at"),
        Index("idx_media_assets_owner", "owner_account_id", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<MediaAsset(id={self.id}, owner={self.owner_account_id}, "
            f"type={self.content_type}, expires_at={self.expires_at})>"
        )


class ExtensionLog(Base):
    """ORM model for extension_logs table - one row per successful extend."""

    __tablename__ = "extension_logs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    asset_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    owner_account_id: Mapped[str] = mapped_column(String(128), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    extension_number: Mapped[int] = mapped_column(Integer, nullable=False)
    new_expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    actor_is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)

    __table_args__ = (Index("idx_extension_logs_asset", "asset_id"),)


class DeletionLog(Base):
    """ORM model for deletion_logs table - one row per purged asset."""

    __tablename__ = "deletion_logs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    asset_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    owner_account_id: Mapped[str] = mapped_column(String(128), nullable=False)
    blob_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    reason: Mapped[DeletionReason] = mapped_column(
        _enum(DeletionReason, "deletion_reason"), nullable=False
    )
    asset_created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    deleted_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("asset_id", name="uq_deletion_log_asset"),
        Index("idx_deletion_logs_deleted_at", "deleted_at"),
    )


class SweepRun(Base):
    """ORM model for sweep_runs table - one row per sweep invocation."""

    __tablename__ = "sweep_runs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    scanned_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deleted_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[SweepStatus] = mapped_column(_enum(SweepStatus, "sweep_status"), nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("idx_sweep_runs_started_at", "started_at"),)
