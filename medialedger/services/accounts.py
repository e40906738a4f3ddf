"""
Account Directory - account creation on first login, lookups and dashboard stats.

Touches identity fields only. Balances belong to CreditLedger and status to
AccountLifecycle.
"""

from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from medialedger.db.models import Account, MediaAsset
from medialedger.db.store import LedgerStore, account_key
from medialedger.exceptions import AccountNotFoundError, WriteVerificationError
from medialedger.models.api import AccountRole, AccountStatus
from medialedger.models.domain import AccountData, LedgerStats, Principal

logger = get_logger(__name__)


def account_to_domain(account: Account) -> AccountData:
    """Convert ORM account to domain model."""
    return AccountData(
        account_id=account.id,
        email=account.email,
        display_name=account.display_name,
        role=account.role,
        image_credits=account.image_credits,
        video_credits=account.video_credits,
        total_granted=account.total_granted,
        total_used=account.total_used,
        status=account.status,
        status_reason=account.status_reason,
        status_actor_id=account.status_actor_id,
        status_changed_at=account.status_changed_at,
        created_at=account.created_at,
        last_login_at=account.last_login_at,
    )


class AccountDirectory:
    """Creates and reads Account records."""

    def __init__(self, store: LedgerStore, superadmin_email: str = "") -> None:
        self.store = store
        self.superadmin_email = superadmin_email.strip().lower()

    def resolve_role(self, principal: Principal) -> AccountRole:
        """Role to store for principal - the configured superadmin is always admin."""
        if self.superadmin_email and principal.email.lower() == self.superadmin_email:
            return AccountRole.ADMIN
        return principal.role

    async def authenticate(self, principal: Principal) -> AccountData:
        """
        Get or create the account for an authenticated principal.

        New accounts start active with zero balances. Existing accounts get
        email, display name, role and last login synced from the principal.
        """
        role = self.resolve_role(principal)

        async def _upsert(session: AsyncSession) -> AccountData:
            now = datetime.now(UTC)
            stmt = select(Account).where(Account.id == principal.account_id).with_for_update()
            account = (await session.execute(stmt)).scalar_one_or_none()

            if account is None:
                account = Account(
                    id=principal.account_id,
                    email=principal.email,
                    display_name=principal.display_name,
                    role=role,
                    image_credits=0,
                    video_credits=0,
                    total_granted=0,
                    total_used=0,
                    status=AccountStatus.ACTIVE,
                    ledger_sequence=0,
                    created_at=now,
                    last_login_at=now,
                )
                session.add(account)
                await session.flush()
                logger.info(
                    "account_created",
                    account_id=principal.account_id,
                    role=role.value,
                )
                return account_to_domain(account)

            if account.email != principal.email:
                account.email = principal.email
            if principal.display_name and account.display_name != principal.display_name:
                account.display_name = principal.display_name
            if account.role != role:
                logger.info(
                    "account_role_changed",
                    account_id=account.id,
                    old_role=account.role.value,
                    new_role=role.value,
                )
                account.role = role
            account.last_login_at = now
            await session.flush()
            return account_to_domain(account)

        try:
            return await self.store.run_serialized(account_key(principal.account_id), _upsert)
        except IntegrityError as exc:
            # Another worker created the row between our read and insert
            logger.warning(
                "account_creation_race", account_id=principal.account_id, error=str(exc)
            )
            try:
                return await self.store.run_serialized(account_key(principal.account_id), _upsert)
            except IntegrityError as retry_exc:
                raise WriteVerificationError(
                    f"account {principal.account_id} could not be created"
                ) from retry_exc

    async def get_account(self, account_id: str) -> AccountData:
        """
        Get account by id.

        Raises:
            AccountNotFoundError: Account doesn't exist
        """
        async with self.store.read_session() as session:
            account = await session.get(Account, account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            return account_to_domain(account)

    async def list_accounts(
        self,
        page: int = 1,
        page_size: int = 50,
        status: AccountStatus | None = None,
    ) -> tuple[list[AccountData], int]:
        """Accounts ordered by creation time, newest first, plus the total count."""
        async with self.store.read_session() as session:
            count_stmt = select(func.count()).select_from(Account)
            stmt = select(Account)
            if status is not None:
                count_stmt = count_stmt.where(Account.status == status)
                stmt = stmt.where(Account.status == status)

            total = (await session.execute(count_stmt)).scalar_one()
            stmt = (
                stmt.order_by(Account.created_at.desc(), Account.id)
                .limit(page_size)
                .offset((page - 1) * page_size)
            )
            result = await session.execute(stmt)
            return [account_to_domain(a) for a in result.scalars().all()], total

    async def stats(self, now: datetime | None = None) -> LedgerStats:
        """Aggregate figures across all accounts and assets."""
        now = now or datetime.now(UTC)
        async with self.store.read_session() as session:
            status_rows = await session.execute(
                select(Account.status, func.count()).group_by(Account.status)
            )
            by_status = {row[0]: row[1] for row in status_rows.all()}

            non_admin = Account.role != AccountRole.ADMIN
            image_total, video_total = (
                await session.execute(
                    select(
                        func.coalesce(func.sum(Account.image_credits), 0),
                        func.coalesce(func.sum(Account.video_credits), 0),
                    ).where(non_admin)
                )
            ).one()
            without_credits = (
                await session.execute(
                    select(func.count())
                    .select_from(Account)
                    .where(non_admin, Account.image_credits == 0, Account.video_credits == 0)
                )
            ).scalar_one()
            total_assets = (
                await session.execute(select(func.count()).select_from(MediaAsset))
            ).scalar_one()
            expired_assets = (
                await session.execute(
                    select(func.count())
                    .select_from(MediaAsset)
                    .where(MediaAsset.expires_at <= now)
                )
            ).scalar_one()

        return LedgerStats(
            total_accounts=sum(by_status.values()),
            active_accounts=by_status.get(AccountStatus.ACTIVE, 0),
            suspended_accounts=by_status.get(AccountStatus.SUSPENDED, 0),
            deleted_accounts=by_status.get(AccountStatus.DELETED, 0),
            accounts_without_credits=without_credits,
            image_credits_in_circulation=int(image_total),
            video_credits_in_circulation=int(video_total),
            total_assets=total_assets,
            expired_assets=expired_assets,
        )
