"""
Summarify Backend — Spend Coordinator Tests
=============================================

What:  The lock → check → debit → action → commit protocol.
How:   Real transactions against the SQLite test database.

What we test:
    ✅ Cost helpers (storage ceil(minutes / 30), flat summary cost)
    ✅ A successful spend writes exactly one entry and runs the action
    ✅ Insufficient credits writes nothing and reports current/required
    ✅ An action that raises rolls the debit back
    ✅ Concurrent spends never overdraw (floor(B / C) winners)
    ✅ Admin adjustments are the only path below zero
"""

import asyncio

import pytest
from sqlalchemy import func, select

from summarify.database import async_session_factory
from summarify.exceptions import InsufficientCreditsError, NotFoundError, ValidationError
from summarify.models.ledger_entry import EntryKind, LedgerEntry
from summarify.services.balance_service import balance_service
from summarify.services.spend_coordinator import (
    Charge,
    spend_coordinator,
    storage_cost,
    summary_cost,
)


async def count_entries(account_id: str) -> int:
    async with async_session_factory() as session:
        result = await session.execute(
            select(func.count(LedgerEntry.id)).where(LedgerEntry.account_id == account_id)
        )
        return result.scalar_one()


class TestCostHelpers:

    @pytest.mark.parametrize(
        "minutes,expected",
        [(None, 0), (0, 0), (1, 1), (30, 1), (31, 2), (45, 2), (60, 2), (61, 3)],
    )
    def test_storage_cost_rounds_up_per_half_hour(self, minutes, expected):
        assert storage_cost(minutes) == expected

    def test_negative_duration_rejected(self):
        with pytest.raises(ValidationError):
            storage_cost(-5)

    def test_summary_cost_is_flat(self):
        assert summary_cost() == 1


class TestSpend:

    @pytest.mark.asyncio
    async def test_spend_debits_and_runs_action(self, make_account):
        account_id = await make_account(balance=10)
        entries_before = await count_entries(account_id)
        seen = {}

        async def action(session, account):
            seen["account"] = account.id
            return "resource"

        result = await spend_coordinator.spend(
            account_id, cost=3, kind=EntryKind.TRANSCRIPT_STORAGE, reason="storage", action=action
        )

        assert result.new_balance == 7
        assert result.credits_deducted == 3
        assert result.resource == "resource"
        assert seen["account"] == account_id
        assert await count_entries(account_id) == entries_before + 1
        assert result.entries[0].delta == -3
        assert result.entries[0].kind == EntryKind.TRANSCRIPT_STORAGE

    @pytest.mark.asyncio
    async def test_insufficient_credits_writes_nothing(self, make_account):
        account_id = await make_account(balance=2)
        entries_before = await count_entries(account_id)
        action_called = False

        async def action(session, account):
            nonlocal action_called
            action_called = True

        with pytest.raises(InsufficientCreditsError) as exc_info:
            await spend_coordinator.spend(
                account_id, cost=5, kind=EntryKind.AI_SUMMARY, reason="summary", action=action
            )

        assert exc_info.value.current == 2
        assert exc_info.value.required == 5
        assert exc_info.value.context["shortfall"] == 3
        assert not action_called
        assert await balance_service.get_balance(account_id) == 2
        assert await count_entries(account_id) == entries_before

    @pytest.mark.asyncio
    async def test_failing_action_rolls_back_debit(self, make_account):
        account_id = await make_account(balance=5)
        entries_before = await count_entries(account_id)

        async def action(session, account):
            raise RuntimeError("insert failed")

        with pytest.raises(RuntimeError):
            await spend_coordinator.spend(
                account_id, cost=1, kind=EntryKind.AI_SUMMARY, reason="summary", action=action
            )

        assert await balance_service.get_balance(account_id) == 5
        assert await count_entries(account_id) == entries_before

    @pytest.mark.asyncio
    async def test_unknown_account(self, database):
        with pytest.raises(NotFoundError):
            await spend_coordinator.spend("nobody", cost=1, kind=EntryKind.AI_SUMMARY, reason="x")

    @pytest.mark.asyncio
    async def test_negative_cost_rejected(self, make_account):
        account_id = await make_account()
        with pytest.raises(ValidationError):
            await spend_coordinator.spend(account_id, cost=-1, kind=EntryKind.AI_SUMMARY, reason="x")

    @pytest.mark.asyncio
    async def test_bundle_checks_total_and_skips_zero_charges(self, make_account):
        account_id = await make_account(balance=2)
        charges = [
            Charge(cost=2, kind=EntryKind.TRANSCRIPT_STORAGE, reason="storage"),
            Charge(cost=1, kind=EntryKind.AI_SUMMARY, reason="summary"),
        ]
        with pytest.raises(InsufficientCreditsError) as exc_info:
            await spend_coordinator.spend_bundle(account_id, charges)
        assert exc_info.value.required == 3
        assert await balance_service.get_balance(account_id) == 2

        entries_before = await count_entries(account_id)
        result = await spend_coordinator.spend_bundle(
            account_id,
            [
                Charge(cost=0, kind=EntryKind.TRANSCRIPT_STORAGE, reason="free storage"),
                Charge(cost=1, kind=EntryKind.AI_SUMMARY, reason="summary"),
            ],
        )
        assert result.new_balance == 1
        assert len(result.entries) == 1
        assert await count_entries(account_id) == entries_before + 1


class TestConcurrentSpends:

    @pytest.mark.asyncio
    async def test_two_spends_one_credit(self, make_account):
        account_id = await make_account(balance=1)

        results = await asyncio.gather(
            spend_coordinator.spend(account_id, cost=1, kind=EntryKind.AI_SUMMARY, reason="a"),
            spend_coordinator.spend(account_id, cost=1, kind=EntryKind.AI_SUMMARY, reason="b"),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, InsufficientCreditsError)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert await balance_service.get_balance(account_id) == 0

    @pytest.mark.asyncio
    async def test_many_spends_never_overdraw(self, make_account):
        account_id = await make_account(balance=5)
        entries_before = await count_entries(account_id)

        results = await asyncio.gather(
            *[
                spend_coordinator.spend(account_id, cost=2, kind=EntryKind.AI_SUMMARY, reason=f"spend {i}")
                for i in range(6)
            ],
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        assert all(isinstance(r, InsufficientCreditsError) for r in results if isinstance(r, Exception))
        assert len(successes) == 5 // 2
        assert await balance_service.get_balance(account_id) == 1
        assert await count_entries(account_id) == entries_before + len(successes)

        audit = await balance_service.audit_account(account_id)
        assert audit.consistent


class TestAdjust:

    @pytest.mark.asyncio
    async def test_adjustment_may_go_negative(self, make_account):
        account_id = await make_account(balance=1)
        result = await spend_coordinator.adjust(account_id, -4, "chargeback")
        assert result.new_balance == -3
        assert result.entries[0].kind == EntryKind.ADMIN_ADJUSTMENT

        audit = await balance_service.audit_account(account_id)
        assert audit.consistent
        assert audit.ledger == -3

    @pytest.mark.asyncio
    async def test_zero_delta_rejected(self, make_account):
        account_id = await make_account()
        with pytest.raises(ValidationError):
            await spend_coordinator.adjust(account_id, 0, "nothing")

    @pytest.mark.asyncio
    async def test_reason_required(self, make_account):
        account_id = await make_account()
        with pytest.raises(ValidationError):
            await spend_coordinator.adjust(account_id, 5, "  ")
