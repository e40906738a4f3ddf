"""
Tests for AuditLog.
"""

import pytest

from medialedger.db.models import Account
from medialedger.db.store import account_key
from medialedger.exceptions import AccountNotFoundError, DataIntegrityError
from medialedger.models.api import Currency, EntryKind
from medialedger.models.domain import AuditRecord


async def test_append_assigns_next_sequence(store, audit, user_account):
    async with store.unit_of_work(account_key("user-1")) as session:
        account = await session.get(Account, "user-1")
        entry = await audit.append(
            session,
            account,
            AuditRecord(
                kind=EntryKind.ADJUST,
                actor_id="admin-1",
                currency=Currency.IMAGE,
                amount=0,
                balance_before=10,
                balance_after=10,
                reason="Note",
            ),
        )

    assert entry.sequence == 3
    assert (await audit.history("user-1"))[0].entry_id == entry.entry_id


async def test_mismatched_balance_is_rejected(store, audit, user_account):
    with pytest.raises(DataIntegrityError):
        async with store.unit_of_work(account_key("user-1")) as session:
            account = await session.get(Account, "user-1")
            await audit.append(
                session,
                account,
                AuditRecord(
                    kind=EntryKind.GRANT,
                    actor_id="admin-1",
                    currency=Currency.IMAGE,
                    amount=5,
                    balance_before=10,
                    balance_after=15,
                    reason="Promo",
                ),
            )

    assert len(await audit.history("user-1")) == 2


async def test_history_unknown_account(audit):
    with pytest.raises(AccountNotFoundError):
        await audit.history("ghost")


async def test_history_of_new_account_is_empty(audit, make_account):
    await make_account("fresh")
    assert await audit.history("fresh") == []
