"""
Tests for LedgerStore.

Covers commit/rollback of a unit of work and the optimistic retry loop.
"""

import pytest
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from medialedger.db.models import Account
from medialedger.db.store import LedgerStore, account_key, asset_key
from medialedger.exceptions import ConcurrencyError


def test_keys_are_namespaced():
    assert account_key("abc") == "account:abc"
    assert asset_key("123") == "asset:123"


def test_max_retries_must_be_positive(store: LedgerStore):
    with pytest.raises(ValueError):
        LedgerStore(store._session_factory, max_retries=0)


async def test_unit_of_work_rolls_back_on_error(store: LedgerStore, make_account):
    await make_account("acct")

    with pytest.raises(RuntimeError):
        async with store.unit_of_work(account_key("acct")) as session:
            account = await session.get(Account, "acct")
            account.image_credits = 99
            await session.flush()
            raise RuntimeError("abort")

    async with store.read_session() as session:
        account = await session.get(Account, "acct")
        assert account.image_credits == 0


async def test_run_serialized_retries_stale_data(store: LedgerStore):
    attempts = 0

    async def flaky(session: AsyncSession) -> str:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise StaleDataError("version mismatch")
        return "done"

    assert await store.run_serialized("k", flaky) == "done"
    assert attempts == 3


async def test_run_serialized_gives_up(store: LedgerStore):
    async def always_stale(session: AsyncSession) -> None:
        raise StaleDataError("version mismatch")

    with pytest.raises(ConcurrencyError) as exc_info:
        await store.run_serialized("account:x", always_stale)
    assert exc_info.value.resource == "account:x"


async def test_version_conflict_from_another_writer_is_retried(
    store: LedgerStore, make_account
):
    """A write that lands between our read and our update forces a clean re-run."""
    await make_account("acct")
    attempts = 0

    async def bump(session: AsyncSession) -> int:
        nonlocal attempts
        attempts += 1
        account = (
            await session.execute(select(Account).where(Account.id == "acct"))
        ).scalar_one()
        if attempts == 1:
            # Simulate another worker committing first
            async with store.transaction() as other:
                await other.execute(
                    update(Account)
                    .where(Account.id == "acct")
                    .values(image_credits=Account.image_credits + 5, version=Account.version + 1)
                )
        account.image_credits = account.image_credits + 1
        await session.flush()
        return account.image_credits

    result = await store.run_serialized(account_key("acct"), bump)

    assert attempts == 2
    assert result == 6
