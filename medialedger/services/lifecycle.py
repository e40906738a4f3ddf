"""
Account Lifecycle - status state machine with admin guard rails.

    active --suspend--> suspended --unsuspend--> active
    active|suspended --delete--> deleted --reactivate--> active

Guard order for suspend/delete: self-action, existence, admin immunity, state.
Every transition appends exactly one status-change audit row.
"""

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from medialedger.db.models import Account
from medialedger.db.store import LedgerStore, account_key
from medialedger.exceptions import (
    AccountNotFoundError,
    AdminAccountProtectedError,
    InvalidStateTransitionError,
    LedgerError,
    SelfActionForbiddenError,
)
from medialedger.models.api import AccountRole, AccountStatus, EntryKind, StatusAction
from medialedger.models.domain import AccountData, AuditRecord
from medialedger.observability.metrics import metrics
from medialedger.services.accounts import account_to_domain
from medialedger.services.audit import AuditLog

logger = get_logger(__name__)

# Allowed source states and resulting state per action
TRANSITIONS: dict[StatusAction, tuple[frozenset[AccountStatus], AccountStatus]] = {
    StatusAction.SUSPEND: (frozenset({AccountStatus.ACTIVE}), AccountStatus.SUSPENDED),
    StatusAction.UNSUSPEND: (frozenset({AccountStatus.SUSPENDED}), AccountStatus.ACTIVE),
    StatusAction.DELETE: (
        frozenset({AccountStatus.ACTIVE, AccountStatus.SUSPENDED}),
        AccountStatus.DELETED,
    ),
    StatusAction.REACTIVATE: (frozenset({AccountStatus.DELETED}), AccountStatus.ACTIVE),
}

# Actions an admin can never apply to itself or to another admin
GUARDED_ACTIONS = frozenset({StatusAction.SUSPEND, StatusAction.DELETE})


def next_status(current: AccountStatus, action: StatusAction) -> AccountStatus | None:
    """Resulting status, or None if action is not allowed from current."""
    sources, target = TRANSITIONS[action]
    if current not in sources:
        return None
    return target


class AccountLifecycle:
    """Sole writer of Account.status."""

    def __init__(self, store: LedgerStore, audit: AuditLog) -> None:
        self.store = store
        self.audit = audit

    async def suspend(self, account_id: str, reason: str | None, actor_id: str) -> AccountData:
        """
        Suspend an active account.

        Raises:
            SelfActionForbiddenError: actor is the target
            AccountNotFoundError: Account doesn't exist
            AdminAccountProtectedError: target is an admin
            InvalidStateTransitionError: target is not active
        """
        return await self._transition(account_id, StatusAction.SUSPEND, reason, actor_id)

    async def unsuspend(self, account_id: str, actor_id: str) -> AccountData:
        """Return a suspended account to active."""
        return await self._transition(account_id, StatusAction.UNSUSPEND, None, actor_id)

    async def delete(self, account_id: str, reason: str | None, actor_id: str) -> AccountData:
        """Soft-delete an active or suspended account. The row is kept."""
        return await self._transition(account_id, StatusAction.DELETE, reason, actor_id)

    async def reactivate(self, account_id: str, actor_id: str) -> AccountData:
        """Return a deleted account to active."""
        return await self._transition(account_id, StatusAction.REACTIVATE, None, actor_id)

    async def transition(
        self,
        account_id: str,
        action: StatusAction,
        reason: str | None,
        actor_id: str,
    ) -> AccountData:
        """Dispatch an admin status request to the matching operation."""
        if action == StatusAction.SUSPEND:
            return await self.suspend(account_id, reason, actor_id)
        if action == StatusAction.UNSUSPEND:
            return await self.unsuspend(account_id, actor_id)
        if action == StatusAction.DELETE:
            return await self.delete(account_id, reason, actor_id)
        return await self.reactivate(account_id, actor_id)

    async def _transition(
        self,
        account_id: str,
        action: StatusAction,
        reason: str | None,
        actor_id: str,
    ) -> AccountData:
        try:
            if action in GUARDED_ACTIONS and account_id == actor_id:
                raise SelfActionForbiddenError(account_id, action)

            async def _apply(session: AsyncSession) -> AccountData:
                stmt = select(Account).where(Account.id == account_id).with_for_update()
                account = (await session.execute(stmt)).scalar_one_or_none()
                if account is None:
                    raise AccountNotFoundError(account_id)
                if action in GUARDED_ACTIONS and account.role == AccountRole.ADMIN:
                    raise AdminAccountProtectedError(account_id, action)

                current = account.status
                target = next_status(current, action)
                if target is None:
                    raise InvalidStateTransitionError(account_id, current, action)

                now = datetime.now(UTC)
                account.status = target
                account.status_reason = reason if target != AccountStatus.ACTIVE else None
                account.status_actor_id = actor_id
                account.status_changed_at = now

                await self.audit.append(
                    session,
                    account,
                    AuditRecord(
                        kind=EntryKind.STATUS_CHANGE,
                        actor_id=actor_id,
                        currency=None,
                        amount=0,
                        balance_before=0,
                        balance_after=0,
                        reason=reason or action.value,
                        status_from=current,
                        status_to=target,
                    ),
                    now=now,
                )
                return account_to_domain(account)

            result = await self.store.run_serialized(account_key(account_id), _apply)
        except LedgerError as exc:
            metrics.record_status_transition(action.value, "rejected")
            logger.warning(
                "account_status_change_rejected",
                account_id=account_id,
                actor_id=actor_id,
                action=action.value,
                error=type(exc).__name__,
            )
            raise

        metrics.record_status_transition(action.value, "success")
        logger.info(
            "account_status_changed",
            account_id=account_id,
            actor_id=actor_id,
            action=action.value,
            status=result.status.value,
            reason=reason,
        )
        return result
