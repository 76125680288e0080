"""
Summarify Backend — Ledger Store
==================================

What:  Row-level primitives over `accounts` and `ledger_entries`: lock an
       account, apply a guarded debit, append an entry, sum the log.
How:   Every method takes the caller's AsyncSession, which must belong to an
       open `database.transaction()`. Nothing here commits.
Who:   Spend Coordinator, Account Service, Settlement Service, job refunds
       and the balance audit.

Balance cache:
    accounts.balance is written only by this module: by append_entry() in
    the same statement sequence that inserts the entry, and by
    rebuild_cache() which recomputes it from the log. Every other module
    treats the column as read-only.

Overdraft guard:
    Debits go through a compare-and-set UPDATE:

        UPDATE accounts SET balance = balance - :amount
         WHERE id = :id AND balance >= :amount

    A zero rowcount means the balance was insufficient at the moment the
    write lock was taken. On PostgreSQL the row is also locked with
    SELECT ... FOR UPDATE beforehand; engines without row locks (SQLite)
    still serialize on the UPDATE itself.
"""

import logging
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from summarify.exceptions import InsufficientCreditsError, NotFoundError
from summarify.models.account import Account
from summarify.models.ledger_entry import LedgerEntry
from summarify.models._types import utcnow

logger = logging.getLogger(__name__)


class LedgerStore:
    """Stateless row operations on the ledger tables."""

    async def get_account(self, session: AsyncSession, account_id: str) -> Optional[Account]:
        result = await session.execute(
            select(Account)
            .where(Account.id == account_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def lock_account(self, session: AsyncSession, account_id: str) -> Account:
        """
        SELECT ... FOR UPDATE on the account row.

        Held until the enclosing transaction ends. Concurrent spends on the
        same account wait here instead of reading a stale balance. SQLite
        ignores the clause.

        Raises:
            NotFoundError: the account does not exist
        """
        result = await session.execute(
            select(Account)
            .where(Account.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise NotFoundError(resource="account", resource_id=account_id)
        return account

    async def read_balance(self, session: AsyncSession, account_id: str) -> int:
        """Current cached balance as seen by this transaction."""
        result = await session.execute(
            select(Account.balance).where(Account.id == account_id)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            raise NotFoundError(resource="account", resource_id=account_id)
        return balance

    async def debit_guarded(
        self,
        session: AsyncSession,
        account_id: str,
        amount: int,
        allow_negative: bool = False,
    ) -> bool:
        """
        Subtract `amount` from the cached balance.

        Unless `allow_negative` is set the UPDATE only matches when the
        balance covers the amount. Returns True when the row changed.
        """
        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(balance=Account.balance - amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if not allow_negative:
            stmt = stmt.where(Account.balance >= amount)

        result = await session.execute(stmt)
        return result.rowcount == 1

    async def append_entry(
        self,
        session: AsyncSession,
        account_id: str,
        delta: int,
        kind: str,
        reason: str,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        allow_negative: bool = False,
    ) -> LedgerEntry:
        """
        Insert one immutable ledger entry and apply its delta to the cache.

        Negative deltas go through debit_guarded(); positive deltas are
        added unconditionally. A unique `idempotency_key` collision surfaces
        as sqlalchemy.exc.IntegrityError at flush and rolls back the
        enclosing transaction.

        Raises:
            InsufficientCreditsError: a guarded debit found too little balance
            NotFoundError: the account does not exist
        """
        if delta < 0:
            applied = await self.debit_guarded(session, account_id, -delta, allow_negative)
            if not applied:
                current = await self.read_balance(session, account_id)
                raise InsufficientCreditsError(current=current, required=-delta)
        else:
            result = await session.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(balance=Account.balance + delta, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise NotFoundError(resource="account", resource_id=account_id)

        entry = LedgerEntry(
            account_id=account_id,
            delta=delta,
            kind=kind,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
            idempotency_key=idempotency_key,
        )
        session.add(entry)
        await session.flush()

        logger.info(
            "Ledger append: account=%s delta=%+d kind=%s ref=%s:%s",
            account_id,
            delta,
            kind,
            reference_type or "-",
            reference_id or "-",
        )
        return entry

    async def ledger_sum(self, session: AsyncSession, account_id: str) -> int:
        """SUM(delta) over the account's entries; 0 for an empty log."""
        result = await session.execute(
            select(func.coalesce(func.sum(LedgerEntry.delta), 0)).where(
                LedgerEntry.account_id == account_id
            )
        )
        return int(result.scalar_one())

    async def rebuild_cache(self, session: AsyncSession, account_id: str) -> int:
        """
        Overwrite the cached balance with SUM(delta) from the log.

        Caller must hold the account lock. Returns the rebuilt balance.
        """
        total = await self.ledger_sum(session, account_id)
        await session.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(balance=total, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return total


# ── Singleton Instance ────────────────────────────────────────────────────
ledger_store = LedgerStore()
