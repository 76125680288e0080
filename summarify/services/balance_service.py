"""
Summarify Backend — Balance / History Query Service
=====================================================

What:  Read side of the ledger: current balance, paginated history with
       usage statistics, and the cached-balance audit.
How:   Balance reads return the cached column, which LedgerStore keeps equal
       to SUM(delta) inside every mutating transaction. audit_account()
       proves it by recomputing the sum; rebuild_balance() repairs it
       under the account lock.
Who:   /api/credits routes, admin audit routes, tests.

Query Patterns:
    History page:  WHERE account_id = :id ORDER BY created_at DESC, id
                   LIMIT :limit OFFSET :offset
    Stats:         one aggregate over the account's entries
"""

import logging
from dataclasses import dataclass

from sqlalchemy import case, func, select

from summarify.database import async_session_factory, transaction
from summarify.exceptions import LedgerInvariantError
from summarify.models.ledger_entry import LedgerEntry
from summarify.schemas.credits import HistoryResponse, HistoryStats, LedgerEntryResponse
from summarify.services.ledger_store import ledger_store
from summarify.services.pagination import make_pagination, validate_page

logger = logging.getLogger(__name__)


def usage_percentage(current_balance: int, total_debited: int) -> int:
    """
    Share of all credits ever available that has been spent.

    min(100, round(debited / (balance + debited) * 100)); 0 when the
    denominator is not positive.
    """
    denominator = current_balance + total_debited
    if denominator <= 0:
        return 0
    return min(100, round(total_debited / denominator * 100))


@dataclass
class AuditResult:
    account_id: str
    cached: int
    ledger: int

    @property
    def consistent(self) -> bool:
        return self.cached == self.ledger


class BalanceService:

    async def get_balance(self, account_id: str) -> int:
        async with async_session_factory() as session:
            return await ledger_store.read_balance(session, account_id)

    async def get_history(self, account_id: str, page: int = 1, limit: int = 20) -> HistoryResponse:
        """
        Newest-first ledger page plus whole-ledger stats.

        Raises:
            ValidationError: page < 1, limit < 1 or limit above the cap
            NotFoundError: unknown account
        """
        validate_page(page, limit)

        async with async_session_factory() as session:
            current_balance = await ledger_store.read_balance(session, account_id)

            totals = (
                await session.execute(
                    select(
                        func.count(LedgerEntry.id),
                        func.coalesce(
                            func.sum(case((LedgerEntry.delta > 0, LedgerEntry.delta), else_=0)), 0
                        ),
                        func.coalesce(
                            func.sum(case((LedgerEntry.delta < 0, -LedgerEntry.delta), else_=0)), 0
                        ),
                    ).where(LedgerEntry.account_id == account_id)
                )
            ).one()
            total_transactions, total_credited, total_debited = (int(v) for v in totals)

            entries = (
                await session.execute(
                    select(LedgerEntry)
                    .where(LedgerEntry.account_id == account_id)
                    .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id)
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
            ).scalars().all()

        return HistoryResponse(
            entries=[LedgerEntryResponse.model_validate(e) for e in entries],
            pagination=make_pagination(total_transactions, page, limit),
            stats=HistoryStats(
                current_balance=current_balance,
                total_credited=total_credited,
                total_debited=total_debited,
                total_transactions=total_transactions,
                usage_percentage=usage_percentage(current_balance, total_debited),
            ),
        )

    async def audit_account(self, account_id: str, strict: bool = False) -> AuditResult:
        """
        Compare the cached balance with SUM(delta).

        Raises:
            LedgerInvariantError: they differ and `strict` is set
        """
        async with async_session_factory() as session:
            cached = await ledger_store.read_balance(session, account_id)
            ledger = await ledger_store.ledger_sum(session, account_id)

        audit = AuditResult(account_id=account_id, cached=cached, ledger=ledger)
        if not audit.consistent:
            logger.error(
                "Ledger invariant violated for %s: cached=%d ledger=%d",
                account_id,
                cached,
                ledger,
            )
            if strict:
                raise LedgerInvariantError(account_id, cached, ledger)
        return audit

    async def rebuild_balance(self, account_id: str) -> AuditResult:
        """Recompute the cached balance from the log under the account lock."""
        async with transaction(f"rebuild:{account_id}") as session:
            account = await ledger_store.lock_account(session, account_id)
            before = account.balance
            rebuilt = await ledger_store.rebuild_cache(session, account_id)

        if before != rebuilt:
            logger.warning("Rebuilt balance of %s: %d → %d", account_id, before, rebuilt)
        return AuditResult(account_id=account_id, cached=rebuilt, ledger=rebuilt)


# ── Singleton Instance ────────────────────────────────────────────────────
balance_service = BalanceService()
