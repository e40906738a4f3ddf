"""
Audit Log - append-only record of every balance and status change.

Entries are written through the caller's session so they commit or roll back
together with the mutation they describe.
"""

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medialedger.db.models import Account, LedgerEntry
from medialedger.db.store import LedgerStore
from medialedger.exceptions import AccountNotFoundError, DataIntegrityError
from medialedger.models.api import Currency
from medialedger.models.domain import AuditRecord, LedgerEntryData


def entry_to_domain(entry: LedgerEntry) -> LedgerEntryData:
    """Convert ORM ledger entry to domain model."""
    return LedgerEntryData(
        entry_id=entry.id,
        account_id=entry.account_id,
        actor_id=entry.actor_id,
        kind=entry.kind,
        currency=entry.currency,
        amount=entry.amount,
        balance_before=entry.balance_before,
        balance_after=entry.balance_after,
        reason=entry.reason,
        sequence=entry.sequence,
        status_from=entry.status_from,
        status_to=entry.status_to,
        created_at=entry.created_at,
    )


class AuditLog:
    """Writes and reads LedgerEntry rows."""

    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    async def append(
        self,
        session: AsyncSession,
        account: Account,
        record: AuditRecord,
        now: datetime | None = None,
    ) -> LedgerEntryData:
        """
        Append one entry for account inside the caller's transaction.

        The caller must hold the account's serialization key; the per-account
        sequence is taken from the locked account row.

        Raises:
            DataIntegrityError: record.balance_after disagrees with the account row
        """
        if record.currency is not None:
            stored = (
                account.video_credits
                if record.currency == Currency.VIDEO
                else account.image_credits
            )
            if stored != record.balance_after:
                raise DataIntegrityError(
                    f"account {account.id} holds {stored} {record.currency.value} credits, "
                    f"entry says {record.balance_after}"
                )

        account.ledger_sequence = account.ledger_sequence + 1
        entry = LedgerEntry(
            account_id=account.id,
            actor_id=record.actor_id,
            kind=record.kind,
            currency=record.currency,
            amount=record.amount,
            balance_before=record.balance_before,
            balance_after=record.balance_after,
            reason=record.reason,
            sequence=account.ledger_sequence,
            status_from=record.status_from,
            status_to=record.status_to,
            created_at=now or datetime.now(UTC),
        )
        session.add(entry)
        await session.flush()
        return entry_to_domain(entry)

    async def history(
        self, account_id: str, limit: int = 50, offset: int = 0
    ) -> list[LedgerEntryData]:
        """
        Entries for one account, newest first in serialization order.

        Raises:
            AccountNotFoundError: Account doesn't exist
        """
        async with self.store.read_session() as session:
            if await session.get(Account, account_id) is None:
                raise AccountNotFoundError(account_id)
            stmt = (
                select(LedgerEntry)
                .where(LedgerEntry.account_id == account_id)
                .order_by(LedgerEntry.sequence.desc())
                .limit(limit)
                .offset(offset)
            )
            result = await session.execute(stmt)
            return [entry_to_domain(entry) for entry in result.scalars().all()]
