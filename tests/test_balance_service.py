"""
Summarify Backend — Balance / History Tests
=============================================

What:  Read side of the ledger and the cached-balance audit.
How:   Entries are written through the Spend Coordinator; the audit tests
       corrupt accounts.balance by hand to prove detection and repair.

What we test:
    ✅ usage_percentage formula and its zero-denominator edge
    ✅ History is newest first with whole-ledger stats and pagination
    ✅ Bad page / limit values are rejected before any query
    ✅ audit_account detects drift; strict mode raises
    ✅ rebuild_balance restores cached == SUM(delta)
"""

import pytest
from sqlalchemy import update

from summarify.database import transaction
from summarify.exceptions import LedgerInvariantError, NotFoundError, ValidationError
from summarify.models.account import Account
from summarify.models.ledger_entry import EntryKind
from summarify.services.account_service import STARTING_BALANCE_REASON
from summarify.services.balance_service import balance_service, usage_percentage
from summarify.services.spend_coordinator import spend_coordinator


async def corrupt_cache(account_id: str, balance: int) -> None:
    async with transaction("test_corrupt_cache") as session:
        await session.execute(update(Account).where(Account.id == account_id).values(balance=balance))


class TestUsagePercentage:

    @pytest.mark.parametrize(
        "balance, debited, expected",
        [
            (50, 0, 0),
            (47, 3, 6),
            (0, 10, 100),
            (1, 2, 67),
            (0, 0, 0),
            (-5, 3, 0),
            (-1, 5, 100),
        ],
    )
    def test_formula(self, balance, debited, expected):
        assert usage_percentage(balance, debited) == expected


class TestHistory:

    async def _spend(self, account_id: str, n: int) -> None:
        for i in range(1, n + 1):
            await spend_coordinator.spend(
                account_id,
                cost=1,
                kind=EntryKind.AI_SUMMARY,
                reason=f"spend {i}",
            )

    @pytest.mark.asyncio
    async def test_newest_first_with_stats(self, make_account):
        account_id = await make_account()
        await self._spend(account_id, 3)

        history = await balance_service.get_history(account_id)

        assert [e.reason for e in history.entries] == ["spend 3", "spend 2", "spend 1", STARTING_BALANCE_REASON]
        assert [e.delta for e in history.entries] == [-1, -1, -1, 50]
        assert history.stats.current_balance == 47
        assert history.stats.total_credited == 50
        assert history.stats.total_debited == 3
        assert history.stats.total_transactions == 4
        assert history.stats.usage_percentage == 6
        assert history.pagination.total == 4
        assert history.pagination.total_pages == 1

    @pytest.mark.asyncio
    async def test_pagination(self, make_account):
        account_id = await make_account()
        await self._spend(account_id, 4)

        page = await balance_service.get_history(account_id, page=2, limit=2)

        assert [e.reason for e in page.entries] == ["spend 2", "spend 1"]
        assert page.pagination.total == 5
        assert page.pagination.total_pages == 3
        # Stats cover the whole ledger, not just the page
        assert page.stats.total_debited == 4

        beyond = await balance_service.get_history(account_id, page=9, limit=2)
        assert beyond.entries == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page, limit", [(0, 20), (1, 0), (1, 101), (-1, 5)])
    async def test_bad_paging_rejected(self, make_account, page, limit):
        account_id = await make_account()
        with pytest.raises(ValidationError):
            await balance_service.get_history(account_id, page=page, limit=limit)

    @pytest.mark.asyncio
    async def test_unknown_account(self, database):
        with pytest.raises(NotFoundError):
            await balance_service.get_history("ghost")


class TestAudit:

    @pytest.mark.asyncio
    async def test_consistent_after_normal_operations(self, make_account):
        account_id = await make_account(balance=7)
        await spend_coordinator.spend(account_id, cost=2, kind=EntryKind.AI_SUMMARY, reason="summary")

        audit = await balance_service.audit_account(account_id, strict=True)
        assert audit.consistent
        assert audit.cached == audit.ledger == 5

    @pytest.mark.asyncio
    async def test_drift_detected_and_rebuilt(self, make_account):
        account_id = await make_account(balance=20)
        await corrupt_cache(account_id, 999)

        audit = await balance_service.audit_account(account_id)
        assert not audit.consistent
        assert (audit.cached, audit.ledger) == (999, 20)

        with pytest.raises(LedgerInvariantError):
            await balance_service.audit_account(account_id, strict=True)

        rebuilt = await balance_service.rebuild_balance(account_id)
        assert rebuilt.cached == 20
        assert (await balance_service.audit_account(account_id, strict=True)).consistent
        assert await balance_service.get_balance(account_id) == 20
