"""
Retention Manager - expiry, bounded extensions and the purge sweep.

Asset states: created -> active -> expired -> purged (terminal).

extend and sweep both serialize on the asset key. The sweep re-reads each
candidate under that key, so an asset extended after the scan is skipped
rather than purged.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from medialedger.config import Settings
from medialedger.db.models import Account, DeletionLog, ExtensionLog, MediaAsset, SweepRun, utc_now
from medialedger.db.store import LedgerStore, asset_key
from medialedger.exceptions import (
    AccountNotFoundError,
    AssetNotFoundError,
    AuthorizationError,
    ExtensionLimitReachedError,
    TransientStorageError,
)
from medialedger.models.api import AccountRole, ContentType, DeletionReason, SweepStatus
from medialedger.models.domain import (
    AccountData,
    AssetData,
    ExtensionResult,
    SweepResult,
    SweepRunData,
)
from medialedger.observability.metrics import metrics
from medialedger.observability.tracing import ledger_span, set_ledger_attributes
from medialedger.services.storage import RemovalOutcome, StorageDeleter

logger = get_logger(__name__)


@dataclass(frozen=True)
class RetentionPolicy:
    """TTL and extension limits per content type."""

    image_ttl: timedelta = timedelta(days=14)
    video_ttl: timedelta = timedelta(days=14)
    extension_period: timedelta = timedelta(days=7)
    max_image_extensions: int = 3
    max_video_extensions: int = 1

    def __post_init__(self) -> None:
        """Validate policy values."""
        if self.image_ttl <= timedelta(0) or self.video_ttl <= timedelta(0):
            raise ValueError("TTL must be positive")
        if self.extension_period <= timedelta(0):
            raise ValueError("Extension period must be positive")
        if self.max_image_extensions < 0 or self.max_video_extensions < 0:
            raise ValueError("Extension limits cannot be negative")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetentionPolicy":
        return cls(
            image_ttl=timedelta(days=settings.image_ttl_days),
            video_ttl=timedelta(days=settings.video_ttl_days),
            extension_period=timedelta(days=settings.extension_days),
            max_image_extensions=settings.max_image_extensions,
            max_video_extensions=settings.max_video_extensions,
        )

    def base_ttl(self, content_type: ContentType) -> timedelta:
        if content_type == ContentType.VIDEO:
            return self.video_ttl
        return self.image_ttl

    def max_extensions(self, content_type: ContentType) -> int:
        if content_type == ContentType.VIDEO:
            return self.max_video_extensions
        return self.max_image_extensions


def asset_to_domain(asset: MediaAsset) -> AssetData:
    """Convert ORM asset to domain model."""
    return AssetData(
        asset_id=asset.id,
        owner_account_id=asset.owner_account_id,
        content_type=asset.content_type,
        blob_key=asset.blob_key,
        created_at=asset.created_at,
        base_ttl=timedelta(seconds=asset.base_ttl_seconds),
        expires_at=asset.expires_at,
        extension_count=asset.extension_count,
        last_extended_at=asset.last_extended_at,
    )


def sweep_run_to_domain(run: SweepRun) -> SweepRunData:
    """Convert ORM sweep run to domain model."""
    return SweepRunData(
        run_id=run.id,
        started_at=run.started_at,
        finished_at=run.finished_at,
        scanned_count=run.scanned_count,
        deleted_count=run.deleted_count,
        error_count=run.error_count,
        status=run.status,
        error=run.error,
    )


class RetentionManager:
    """Owns MediaAsset expiry and purging."""

    def __init__(
        self,
        store: LedgerStore,
        storage: StorageDeleter,
        policy: RetentionPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.storage = storage
        self.policy = policy or RetentionPolicy()
        self.clock = clock

    def max_extensions(self, content_type: ContentType) -> int:
        return self.policy.max_extensions(content_type)

    async def register(
        self,
        owner_account_id: str,
        content_type: ContentType,
        blob_key: str,
        created_at: datetime | None = None,
        base_ttl: timedelta | None = None,
    ) -> AssetData:
        """
        Record a newly generated asset.

        Raises:
            AccountNotFoundError: owner doesn't exist
        """
        if not blob_key:
            raise ValueError("blob_key cannot be empty")
        created_at = created_at or self.clock()
        ttl = base_ttl or self.policy.base_ttl(content_type)
        asset_id = uuid4()

        async def _register(session: AsyncSession) -> AssetData:
            if await session.get(Account, owner_account_id) is None:
                raise AccountNotFoundError(owner_account_id)
            asset = MediaAsset(
                id=asset_id,
                owner_account_id=owner_account_id,
                content_type=content_type,
                blob_key=blob_key,
                created_at=created_at,
                base_ttl_seconds=int(ttl.total_seconds()),
                expires_at=created_at + ttl,
                extension_count=0,
            )
            session.add(asset)
            await session.flush()
            return asset_to_domain(asset)

        asset = await self.store.run_serialized(asset_key(asset_id), _register)
        logger.info(
            "asset_registered",
            asset_id=str(asset.asset_id),
            owner_account_id=owner_account_id,
            content_type=content_type.value,
            expires_at=asset.expires_at.isoformat(),
        )
        return asset

    async def get_asset(self, asset_id: UUID) -> AssetData:
        """
        Raises:
            AssetNotFoundError: asset doesn't exist or was purged
        """
        async with self.store.read_session() as session:
            asset = await session.get(MediaAsset, asset_id)
            if asset is None:
                raise AssetNotFoundError(asset_id)
            return asset_to_domain(asset)

    async def list_assets(self, owner_account_id: str) -> list[AssetData]:
        """Owner's assets, newest first."""
        async with self.store.read_session() as session:
            stmt = (
                select(MediaAsset)
                .where(MediaAsset.owner_account_id == owner_account_id)
                .order_by(MediaAsset.created_at.desc())
            )
            result = await session.execute(stmt)
            return [asset_to_domain(a) for a in result.scalars().all()]

    async def list_sweep_runs(self, limit: int = 20) -> list[SweepRunData]:
        """Most recent sweep runs first."""
        async with self.store.read_session() as session:
            stmt = select(SweepRun).order_by(SweepRun.started_at.desc()).limit(limit)
            result = await session.execute(stmt)
            return [sweep_run_to_domain(r) for r in result.scalars().all()]

    async def extend(self, asset_id: UUID, actor: AccountData) -> ExtensionResult:
        """
        Move expires_at to one extension period from now.

        Each call consumes one extension. Admin actors and assets owned by
        admins are not limited.

        Raises:
            AssetNotFoundError: asset doesn't exist or was purged
            AuthorizationError: actor is neither owner nor admin
            ExtensionLimitReachedError: no extensions remaining
        """

        async def _extend(session: AsyncSession) -> tuple[ExtensionResult, ContentType]:
            stmt = select(MediaAsset).where(MediaAsset.id == asset_id).with_for_update()
            asset = (await session.execute(stmt)).scalar_one_or_none()
            if asset is None:
                raise AssetNotFoundError(asset_id)
            if asset.owner_account_id != actor.account_id and not actor.is_admin:
                raise AuthorizationError("asset:extend")

            owner = await session.get(Account, asset.owner_account_id)
            unlimited = actor.is_admin or (owner is not None and owner.role == AccountRole.ADMIN)
            limit = self.policy.max_extensions(asset.content_type)
            if not unlimited and asset.extension_count >= limit:
                metrics.record_extension(asset.content_type.value, "limit_reached")
                raise ExtensionLimitReachedError(asset_id, asset.extension_count, limit)

            now = self.clock()
            # The window restarts from now but never pulls an expiry earlier.
            asset.expires_at = max(asset.expires_at, now + self.policy.extension_period)
            asset.extension_count = asset.extension_count + 1
            asset.last_extended_at = now
            session.add(
                ExtensionLog(
                    asset_id=asset.id,
                    owner_account_id=asset.owner_account_id,
                    actor_id=actor.account_id,
                    extension_number=asset.extension_count,
                    new_expires_at=asset.expires_at,
                    actor_is_admin=actor.is_admin,
                    created_at=now,
                )
            )
            await session.flush()

            result = ExtensionResult(
                asset_id=asset.id,
                new_expires_at=asset.expires_at,
                extension_count=asset.extension_count,
                remaining=None if unlimited else limit - asset.extension_count,
            )
            return result, asset.content_type

        with ledger_span(
            "retention.extend", asset_id=asset_id, actor_id=actor.account_id
        ) as span:
            result, content_type = await self.store.run_serialized(asset_key(asset_id), _extend)
            set_ledger_attributes(
                span,
                content_type=content_type,
                extension_count=result.extension_count,
                remaining=result.remaining,
            )
        metrics.record_extension(content_type.value, "success")
        logger.info(
            "asset_extended",
            asset_id=str(asset_id),
            actor_id=actor.account_id,
            extension_count=result.extension_count,
            remaining=result.remaining,
            new_expires_at=result.new_expires_at.isoformat(),
        )
        return result

    async def delete_asset(self, asset_id: UUID, actor: AccountData) -> None:
        """
        Purge an asset on its owner's request.

        Raises:
            AssetNotFoundError: asset doesn't exist or was purged
            AuthorizationError: actor is neither owner nor admin
            TransientStorageError: blob removal failed, record kept
        """

        async def _delete(session: AsyncSession) -> None:
            asset = await self._lock_asset(session, asset_id)
            if asset is None:
                raise AssetNotFoundError(asset_id)
            if asset.owner_account_id != actor.account_id and not actor.is_admin:
                raise AuthorizationError("asset:delete")
            await self._purge(session, asset, DeletionReason.OWNER)

        await self.store.run_serialized(asset_key(asset_id), _delete)
        logger.info("asset_deleted", asset_id=str(asset_id), actor_id=actor.account_id)

    async def sweep(self, now: datetime | None = None) -> SweepResult:
        """
        Purge every asset with expires_at <= now.

        Per-asset failures are logged and counted; the record is kept so the
        next sweep retries it. Safe to run repeatedly and concurrently.
        """
        now = now or self.clock()
        with ledger_span("retention.sweep", cutoff=now.isoformat()) as span:
            result = await self._run_sweep(now)
            set_ledger_attributes(
                span,
                run_id=result.run_id,
                scanned_count=result.scanned_count,
                deleted_count=result.deleted_count,
                error_count=result.error_count,
            )
        return result

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _run_sweep(self, now: datetime) -> SweepResult:
        started_at = self.clock()
        started = time.perf_counter()
        run_id = uuid4()
        scanned = deleted = errors = 0

        logger.info("sweep_started", run_id=str(run_id), cutoff=now.isoformat())
        try:
            async with self.store.read_session() as session:
                stmt = (
                    select(MediaAsset.id)
                    .where(MediaAsset.expires_at <= now)
                    .order_by(MediaAsset.expires_at)
                )
                candidates = list((await session.execute(stmt)).scalars().all())

            for candidate_id in candidates:
                scanned += 1
                try:
                    if await self._sweep_one(candidate_id, now):
                        deleted += 1
                except TransientStorageError as exc:
                    errors += 1
                    logger.warning(
                        "sweep_asset_storage_error",
                        run_id=str(run_id),
                        asset_id=str(candidate_id),
                        error=exc.message,
                    )
                except Exception as exc:
                    errors += 1
                    metrics.record_error(type(exc).__name__, "sweep")
                    logger.exception(
                        "sweep_asset_failed", run_id=str(run_id), asset_id=str(candidate_id)
                    )
        except Exception as exc:
            await self._record_run(
                run_id, started_at, scanned, deleted, errors, SweepStatus.FAILED, str(exc)
            )
            logger.exception("sweep_failed", run_id=str(run_id))
            raise

        await self._record_run(run_id, started_at, scanned, deleted, errors, SweepStatus.COMPLETED)
        duration = time.perf_counter() - started
        metrics.record_sweep(deleted, errors, duration)
        logger.info(
            "sweep_completed",
            run_id=str(run_id),
            scanned_count=scanned,
            deleted_count=deleted,
            error_count=errors,
            duration_seconds=round(duration, 3),
        )
        return SweepResult(
            run_id=run_id, scanned_count=scanned, deleted_count=deleted, error_count=errors
        )

    async def _sweep_one(self, asset_id: UUID, now: datetime) -> bool:
        """Purge one candidate if it is still present and still expired."""

        async def _apply(session: AsyncSession) -> bool:
            asset = await self._lock_asset(session, asset_id)
            if asset is None or asset.expires_at > now:
                return False
            await self._purge(session, asset, DeletionReason.EXPIRED)
            return True

        return await self.store.run_serialized(asset_key(asset_id), _apply)

    async def _lock_asset(self, session: AsyncSession, asset_id: UUID) -> MediaAsset | None:
        stmt = select(MediaAsset).where(MediaAsset.id == asset_id).with_for_update()
        return (await session.execute(stmt)).scalar_one_or_none()

    async def _purge(
        self, session: AsyncSession, asset: MediaAsset, reason: DeletionReason
    ) -> None:
        """Remove blob, then record, then write the deletion log row."""
        outcome = await self.storage.remove(asset.blob_key)
        if outcome == RemovalOutcome.NOT_FOUND:
            logger.info("asset_blob_already_gone", asset_id=str(asset.id), blob_key=asset.blob_key)

        session.add(
            DeletionLog(
                asset_id=asset.id,
                owner_account_id=asset.owner_account_id,
                blob_key=asset.blob_key,
                reason=reason,
                asset_created_at=asset.created_at,
                expires_at=asset.expires_at,
                deleted_at=self.clock(),
            )
        )
        await session.delete(asset)
        await session.flush()

    async def _record_run(
        self,
        run_id: UUID,
        started_at: datetime,
        scanned: int,
        deleted: int,
        errors: int,
        status: SweepStatus,
        error: str | None = None,
    ) -> None:
        async with self.store.transaction() as session:
            session.add(
                SweepRun(
                    id=run_id,
                    started_at=started_at,
                    finished_at=self.clock(),
                    scanned_count=scanned,
                    deleted_count=deleted,
                    error_count=errors,
                    status=status,
                    error=error,
                )
            )
