"""
Tests for CreditLedger.

Runs against a real SQLite database so balances, totals and audit rows are
checked after actual commits.
"""

import asyncio

import pytest

from medialedger.exceptions import (
    AccountDeletedError,
    AccountNotFoundError,
    AccountSuspendedError,
    InsufficientCreditsError,
    InvalidAmountError,
)
from medialedger.models.api import AccountRole, Currency, EntryKind
from medialedger.models.domain import AccountData, CreditDelta


def assert_balance_invariant(account: AccountData) -> None:
    assert account.total_granted - account.total_used == (
        account.image_credits + account.video_credits
    )


class TestGrant:
    async def test_grant_increases_balance_and_total(self, ledger, directory, make_account):
        await make_account("acct")

        entry = await ledger.grant("acct", CreditDelta(Currency.IMAGE, 5, "Promo"), "admin-1")

        assert entry.kind == EntryKind.GRANT
        assert entry.amount == 5
        assert (entry.balance_before, entry.balance_after) == (0, 5)
        assert entry.actor_id == "admin-1"
        account = await directory.get_account("acct")
        assert account.image_credits == 5
        assert account.total_granted == 5
        assert_balance_invariant(account)

    @pytest.mark.parametrize("amount", [0, -1])
    async def test_grant_rejects_non_positive(self, ledger, audit, make_account, amount):
        await make_account("acct")

        with pytest.raises(InvalidAmountError):
            await ledger.grant("acct", CreditDelta(Currency.IMAGE, amount, "x"), "admin-1")

        assert await audit.history("acct") == []

    async def test_grant_unknown_account(self, ledger):
        with pytest.raises(AccountNotFoundError):
            await ledger.grant("ghost", CreditDelta(Currency.IMAGE, 1, "x"), "admin-1")


class TestDeduct:
    async def test_deduct_reduces_balance(self, ledger, directory, user_account):
        entry = await ledger.deduct("user-1", CreditDelta(Currency.IMAGE, 4, "Refund"), "admin-1")

        assert entry.kind == EntryKind.DEDUCT
        assert entry.amount == -4
        assert (entry.balance_before, entry.balance_after) == (10, 6)
        account = await directory.get_account("user-1")
        assert account.image_credits == 6
        assert account.total_used == 4
        assert_balance_invariant(account)

    async def test_deduct_more_than_balance(self, ledger, audit, directory, user_account):
        history_before = await audit.history("user-1")

        with pytest.raises(InsufficientCreditsError) as exc_info:
            await ledger.deduct("user-1", CreditDelta(Currency.VIDEO, 3, "x"), "admin-1")

        assert exc_info.value.balance == 2
        assert exc_info.value.required == 3
        account = await directory.get_account("user-1")
        assert account.video_credits == 2
        assert await audit.history("user-1") == history_before

    async def test_admin_deduct_never_fails_and_never_mutates(
        self, ledger, directory, make_account
    ):
        await make_account("boss", role=AccountRole.ADMIN)

        entry = await ledger.deduct("boss", CreditDelta(Currency.VIDEO, 50, "x"), "admin-1")

        assert entry.balance_before == entry.balance_after == 0
        account = await directory.get_account("boss")
        assert account.video_credits == 0
        assert account.total_used == 0


class TestSpend:
    async def test_spend_is_self_actor(self, ledger, user_account):
        entry = await ledger.spend("user-1", CreditDelta(Currency.IMAGE, 1, "Generation"))

        assert entry.kind == EntryKind.SPEND
        assert entry.actor_id == "user-1"
        assert entry.balance_after == 9

    async def test_spend_rejected_when_suspended(self, ledger, lifecycle, user_account):
        await lifecycle.suspend("user-1", "abuse", "admin-1")

        with pytest.raises(AccountSuspendedError) as exc_info:
            await ledger.spend("user-1", CreditDelta(Currency.IMAGE, 1, "Generation"))
        assert exc_info.value.reason == "abuse"

    async def test_spend_rejected_when_deleted(self, ledger, lifecycle, user_account):
        await lifecycle.delete("user-1", "gdpr", "admin-1")

        with pytest.raises(AccountDeletedError):
            await ledger.spend("user-1", CreditDelta(Currency.IMAGE, 1, "Generation"))


class TestSetExact:
    async def test_raise_counts_as_granted(self, ledger, directory, user_account):
        entry = await ledger.set_exact("user-1", CreditDelta(Currency.IMAGE, 25, "Fix"), "admin-1")

        assert entry.kind == EntryKind.ADJUST
        assert entry.amount == 15
        account = await directory.get_account("user-1")
        assert account.image_credits == 25
        assert_balance_invariant(account)

    async def test_cut_counts_as_used(self, ledger, directory, user_account):
        entry = await ledger.set_exact("user-1", CreditDelta(Currency.IMAGE, 0, "Fix"), "admin-1")

        assert entry.amount == -10
        assert entry.balance_after == 0
        account = await directory.get_account("user-1")
        assert account.total_used == 10
        assert_balance_invariant(account)

    async def test_negative_target_rejected(self, ledger, user_account):
        with pytest.raises(InvalidAmountError):
            await ledger.set_exact("user-1", CreditDelta(Currency.IMAGE, -1, "Fix"), "admin-1")


class TestBalanceAndHistory:
    async def test_get_balance(self, ledger, user_account):
        balance = await ledger.get_balance("user-1")
        assert (balance.image_credits, balance.video_credits) == (10, 2)
        assert balance.unlimited is False

    async def test_admin_balance_is_unlimited(self, ledger, admin_account):
        balance = await ledger.get_balance("admin-1")
        assert balance.unlimited is True

    async def test_history_is_newest_first_with_increasing_sequence(self, ledger, user_account):
        await ledger.spend("user-1", CreditDelta(Currency.IMAGE, 1, "Generation"))

        entries = await ledger.history("user-1")

        assert [e.sequence for e in entries] == [3, 2, 1]
        assert entries[0].kind == EntryKind.SPEND

    async def test_history_pagination(self, ledger, user_account):
        page = await ledger.history("user-1", limit=1, offset=1)
        assert [e.sequence for e in page] == [1]


class TestConcurrency:
    @pytest.mark.parametrize("requests,balance", [(20, 7), (5, 10)])
    async def test_concurrent_spends_never_overdraw(
        self, ledger, audit, directory, make_account, requests, balance
    ):
        """N concurrent spends of 1 against balance B: exactly min(N, B) succeed."""
        await make_account("acct", image_credits=balance)

        results = await asyncio.gather(
            *[
                ledger.spend("acct", CreditDelta(Currency.IMAGE, 1, "Generation"))
                for _ in range(requests)
            ],
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == min(requests, balance)
        assert all(isinstance(f, InsufficientCreditsError) for f in failures)

        account = await directory.get_account("acct")
        assert account.image_credits == balance - len(successes)
        assert_balance_invariant(account)

        spends = [e for e in await audit.history("acct", limit=100) if e.kind == EntryKind.SPEND]
        assert len(spends) == len(successes)
        sequences = sorted(e.sequence for e in await audit.history("acct", limit=100))
        assert sequences == list(range(1, len(sequences) + 1))

    async def test_distinct_accounts_proceed_independently(self, ledger, directory, make_account):
        await make_account("a", image_credits=3)
        await make_account("b", image_credits=3)

        await asyncio.gather(
            *[ledger.spend("a", CreditDelta(Currency.IMAGE, 1, "g")) for _ in range(3)],
            *[ledger.spend("b", CreditDelta(Currency.IMAGE, 1, "g")) for _ in range(3)],
        )

        assert (await directory.get_account("a")).image_credits == 0
        assert (await directory.get_account("b")).image_credits == 0


async def test_image_generation_scenario(ledger, lifecycle, directory, audit, make_account):
    """Grant, spend to zero, refuse, suspend, refuse, unsuspend, spend again."""
    await make_account("u")
    await ledger.grant("u", CreditDelta(Currency.IMAGE, 3, "Welcome"), "admin-1")

    for _ in range(3):
        await ledger.spend("u", CreditDelta(Currency.IMAGE, 1, "Generation"))
    with pytest.raises(InsufficientCreditsError):
        await ledger.spend("u", CreditDelta(Currency.IMAGE, 1, "Generation"))

    await ledger.grant("u", CreditDelta(Currency.IMAGE, 1, "Top up"), "admin-1")
    await lifecycle.suspend("u", "review", "admin-1")
    with pytest.raises(AccountSuspendedError):
        await ledger.spend("u", CreditDelta(Currency.IMAGE, 1, "Generation"))

    await lifecycle.unsuspend("u", "admin-1")
    await ledger.spend("u", CreditDelta(Currency.IMAGE, 1, "Generation"))

    account = await directory.get_account("u")
    assert account.image_credits == 0
    assert account.total_granted == 4
    assert account.total_used == 4
    kinds = [e.kind for e in reversed(await audit.history("u"))]
    assert kinds == [
        EntryKind.GRANT,
        EntryKind.SPEND,
        EntryKind.SPEND,
        EntryKind.SPEND,
        EntryKind.GRANT,
        EntryKind.STATUS_CHANGE,
        EntryKind.STATUS_CHANGE,
        EntryKind.SPEND,
    ]
