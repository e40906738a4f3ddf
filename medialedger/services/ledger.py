"""
Credit Ledger - dual-currency balances with atomic audit rows.

NO DICTIONARIES - All operations use strongly typed domain models.

Every mutation follows the same pattern:
1. Validate the amount before touching the database
2. Lock the account (per-key lock + SELECT FOR UPDATE)
3. Compute the new balance with the pure helpers below
4. Update the account and append the audit row in the same transaction
"""

from collections.abc import Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from medialedger.db.models import Account
from medialedger.db.store import LedgerStore, account_key
from medialedger.exceptions import (
    AccountDeletedError,
    AccountNotFoundError,
    AccountSuspendedError,
    InsufficientCreditsError,
    InvalidAmountError,
    LedgerError,
)
from medialedger.models.api import AccountRole, AccountStatus, Currency, EntryKind
from medialedger.models.domain import AuditRecord, BalanceData, CreditDelta, LedgerEntryData
from medialedger.observability.metrics import metrics
from medialedger.observability.tracing import ledger_span, set_ledger_attributes
from medialedger.services.audit import AuditLog

logger = get_logger(__name__)


# ============================================================================
# Balance arithmetic
# ============================================================================


def apply_grant(balance: int, amount: int) -> int:
    """Balance after granting amount."""
    if amount <= 0:
        raise InvalidAmountError(amount, "positive")
    return balance + amount


def apply_deduct(currency: Currency, balance: int, amount: int, exempt: bool) -> int:
    """
    Balance after deducting amount.

    Exempt (admin) accounts are never charged, so their balance is unchanged.

    Raises:
        InvalidAmountError: amount <= 0
        InsufficientCreditsError: amount > balance for a non-exempt account
    """
    if amount <= 0:
        raise InvalidAmountError(amount, "positive")
    if exempt:
        return balance
    if amount > balance:
        raise InsufficientCreditsError(currency, balance, amount)
    return balance - amount


def split_adjustment(balance: int, target: int) -> tuple[int, int, int]:
    """
    Split a set-exact adjustment into (delta, granted, used).

    A raise counts toward total_granted and a cut toward total_used so
    total_granted - total_used keeps tracking the sum of balances.
    """
    if target < 0:
        raise InvalidAmountError(target, "zero or positive")
    delta = target - balance
    if delta >= 0:
        return delta, delta, 0
    return delta, 0, -delta


def _get_balance(account: Account, currency: Currency) -> int:
    if currency == Currency.VIDEO:
        return account.video_credits
    return account.image_credits


def _set_balance(account: Account, currency: Currency, value: int) -> None:
    if currency == Currency.VIDEO:
        account.video_credits = value
    else:
        account.image_credits = value


class CreditLedger:
    """Owns image and video balances. All callers go through this class."""

    def __init__(self, store: LedgerStore, audit: AuditLog) -> None:
        self.store = store
        self.audit = audit

    async def get_balance(self, account_id: str) -> BalanceData:
        """
        Current balances for both currencies.

        Raises:
            AccountNotFoundError: Account doesn't exist
        """
        async with self.store.read_session() as session:
            account = await session.get(Account, account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            return BalanceData(
                account_id=account.id,
                image_credits=account.image_credits,
                video_credits=account.video_credits,
                unlimited=account.role == AccountRole.ADMIN,
            )

    async def history(
        self, account_id: str, limit: int = 50, offset: int = 0
    ) -> list[LedgerEntryData]:
        """Audit history for one account, newest first."""
        return await self.audit.history(account_id, limit=limit, offset=offset)

    async def grant(self, account_id: str, delta: CreditDelta, actor_id: str) -> LedgerEntryData:
        """
        Add credits to an account.

        Raises:
            InvalidAmountError: amount <= 0
            AccountNotFoundError: Account doesn't exist
        """
        kind = EntryKind.GRANT
        self._require_positive(kind, delta)

        async def _grant(session: AsyncSession) -> LedgerEntryData:
            account = await self._lock_account(session, account_id)
            before = _get_balance(account, delta.currency)
            after = apply_grant(before, delta.amount)

            _set_balance(account, delta.currency, after)
            account.total_granted = account.total_granted + delta.amount

            return await self.audit.append(
                session,
                account,
                AuditRecord(
                    kind=kind,
                    actor_id=actor_id,
                    currency=delta.currency,
                    amount=delta.amount,
                    balance_before=before,
                    balance_after=after,
                    reason=delta.reason,
                ),
            )

        entry = await self._run(kind, delta, account_id, _grant)
        logger.info(
            "credits_granted",
            account_id=account_id,
            actor_id=actor_id,
            currency=delta.currency.value,
            amount=delta.amount,
            balance_after=entry.balance_after,
        )
        return entry

    async def deduct(
        self, account_id: str, delta: CreditDelta, actor_id: str
    ) -> LedgerEntryData:
        """
        Remove credits from an account on an admin's behalf.

        Admin accounts are exempt: the call succeeds and is audited but
        neither the balance nor the totals move.

        Raises:
            InvalidAmountError: amount <= 0
            AccountNotFoundError: Account doesn't exist
            InsufficientCreditsError: amount exceeds balance
        """
        kind = EntryKind.DEDUCT
        self._require_positive(kind, delta)

        async def _deduct(session: AsyncSession) -> LedgerEntryData:
            account = await self._lock_account(session, account_id)
            return await self._debit(session, account, kind, delta, actor_id)

        entry = await self._run(kind, delta, account_id, _deduct)
        logger.info(
            "credits_deducted",
            account_id=account_id,
            actor_id=actor_id,
            currency=delta.currency.value,
            amount=delta.amount,
            balance_after=entry.balance_after,
        )
        return entry

    async def spend(self, account_id: str, delta: CreditDelta) -> LedgerEntryData:
        """
        Self-service deduction after a successful generation.

        Raises:
            InvalidAmountError: amount <= 0
            AccountNotFoundError: Account doesn't exist
            AccountSuspendedError: Account is suspended
            AccountDeletedError: Account is deleted
            InsufficientCreditsError: amount exceeds balance
        """
        kind = EntryKind.SPEND
        self._require_positive(kind, delta)

        async def _spend(session: AsyncSession) -> LedgerEntryData:
            account = await self._lock_account(session, account_id)
            if account.status == AccountStatus.SUSPENDED:
                raise AccountSuspendedError(account.id, account.status_reason)
            if account.status == AccountStatus.DELETED:
                raise AccountDeletedError(account.id)
            return await self._debit(session, account, kind, delta, account_id)

        entry = await self._run(kind, delta, account_id, _spend)
        logger.info(
            "credits_spent",
            account_id=account_id,
            currency=delta.currency.value,
            amount=delta.amount,
            balance_after=entry.balance_after,
        )
        return entry

    async def set_exact(
        self, account_id: str, delta: CreditDelta, actor_id: str
    ) -> LedgerEntryData:
        """
        Overwrite one balance with delta.amount.

        The audit row carries the signed difference from the previous balance.

        Raises:
            InvalidAmountError: amount < 0
            AccountNotFoundError: Account doesn't exist
        """
        kind = EntryKind.ADJUST
        if delta.amount < 0:
            metrics.record_ledger_operation(kind.value, delta.currency.value, "invalid")
            raise InvalidAmountError(delta.amount, "zero or positive")

        async def _set(session: AsyncSession) -> LedgerEntryData:
            account = await self._lock_account(session, account_id)
            before = _get_balance(account, delta.currency)
            signed, granted, used = split_adjustment(before, delta.amount)

            _set_balance(account, delta.currency, delta.amount)
            account.total_granted = account.total_granted + granted
            account.total_used = account.total_used + used

            return await self.audit.append(
                session,
                account,
                AuditRecord(
                    kind=kind,
                    actor_id=actor_id,
                    currency=delta.currency,
                    amount=signed,
                    balance_before=before,
                    balance_after=delta.amount,
                    reason=delta.reason,
                ),
            )

        entry = await self._run(kind, delta, account_id, _set)
        logger.info(
            "credits_set",
            account_id=account_id,
            actor_id=actor_id,
            currency=delta.currency.value,
            balance_before=entry.balance_before,
            balance_after=entry.balance_after,
        )
        return entry

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _debit(
        self,
        session: AsyncSession,
        account: Account,
        kind: EntryKind,
        delta: CreditDelta,
        actor_id: str,
    ) -> LedgerEntryData:
        """Shared body of deduct and spend. Caller holds the account lock."""
        exempt = account.role == AccountRole.ADMIN
        before = _get_balance(account, delta.currency)
        after = apply_deduct(delta.currency, before, delta.amount, exempt)

        if not exempt:
            _set_balance(account, delta.currency, after)
            account.total_used = account.total_used + delta.amount

        return await self.audit.append(
            session,
            account,
            AuditRecord(
                kind=kind,
                actor_id=actor_id,
                currency=delta.currency,
                amount=-delta.amount,
                balance_before=before,
                balance_after=after,
                reason=delta.reason,
            ),
        )

    async def _lock_account(self, session: AsyncSession, account_id: str) -> Account:
        """Lock account row for update (SELECT FOR UPDATE)."""
        stmt = select(Account).where(Account.id == account_id).with_for_update()
        account = (await session.execute(stmt)).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def _require_positive(self, kind: EntryKind, delta: CreditDelta) -> None:
        if delta.amount <= 0:
            metrics.record_ledger_operation(kind.value, delta.currency.value, "invalid")
            raise InvalidAmountError(delta.amount, "positive")

    async def _run(
        self,
        kind: EntryKind,
        delta: CreditDelta,
        account_id: str,
        operation: Callable[[AsyncSession], Awaitable[LedgerEntryData]],
    ) -> LedgerEntryData:
        """Run operation serialized on the account and record its outcome."""
        try:
            with ledger_span(
                f"ledger.{kind.value}",
                account_id=account_id,
                currency=delta.currency,
                kind=kind,
                amount=delta.amount,
            ) as span:
                entry = await self.store.run_serialized(account_key(account_id), operation)
                set_ledger_attributes(
                    span, balance_after=entry.balance_after, sequence=entry.sequence
                )
        except InsufficientCreditsError as exc:
            metrics.record_ledger_operation(kind.value, delta.currency.value, "insufficient")
            logger.info(
                "credits_insufficient",
                account_id=account_id,
                kind=kind.value,
                currency=delta.currency.value,
                balance=exc.balance,
                required=exc.required,
            )
            raise
        except LedgerError as exc:
            metrics.record_ledger_operation(kind.value, delta.currency.value, "rejected")
            metrics.record_error(type(exc).__name__, kind.value)
            raise
        metrics.record_ledger_operation(
            kind.value, delta.currency.value, "success", amount=entry.amount
        )
        return entry
