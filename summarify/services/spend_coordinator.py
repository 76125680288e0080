"""
Summarify Backend — Spend Coordinator
=======================================

What:  The one protocol every billable operation goes through:
       lock account → check balance → debit → run the paid action → commit.
How:   Opens a `database.transaction()`, locks the account row, appends one
       negative ledger entry per charge and runs the caller's action inside
       the same transaction. Any exception (insufficient credits, a conflict
       raised by the action, a database error) rolls everything back.
Who:   TranscriptService (storage + optional summary), SummaryService
       (summary), admin adjustments.
When:  Costs are computed before the transaction opens, so the debited
       amount is fixed and auditable.

Outcome on success:
    one ledger entry per non-zero charge, the resource the action created,
    and a balance lower by the bundle total.
Outcome on failure:
    no rows written at all.

Overdraft:
    The balance check is repeated by the guarded UPDATE in LedgerStore, so
    two concurrent requests can never both spend the same credits. Only
    `admin_adjustment` charges may take the balance below zero.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from summarify.config import settings
from summarify.database import transaction
from summarify.exceptions import (
    DatabaseError,
    InsufficientCreditsError,
    SummarifyError,
    ValidationError,
)
from summarify.models.account import Account
from summarify.models.ledger_entry import EntryKind, LedgerEntry
from summarify.services.ledger_store import ledger_store

logger = logging.getLogger(__name__)

# Runs inside the spend transaction after the debit; returns the created resource
SpendAction = Callable[[AsyncSession, Account], Awaitable[Any]]


# ── Cost Helpers ──────────────────────────────────────────────────────────

def storage_cost(duration_minutes: Optional[int]) -> int:
    """
    Credits to store a transcript: ceil(minutes / 30).

    0 for a missing or zero duration.

    >>> storage_cost(45)
    2
    """
    if duration_minutes is None or duration_minutes == 0:
        return 0
    if duration_minutes < 0:
        raise ValidationError("Meeting duration cannot be negative", field="duration_minutes")
    return math.ceil(duration_minutes / settings.storage_minutes_per_credit)


def summary_cost() -> int:
    """Flat credit cost of one AI summary."""
    return settings.ai_summary_cost


# ── Data Types ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Charge:
    """One line of a spend: debits `cost` credits with the given kind."""

    cost: int
    kind: str
    reason: str
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None


@dataclass
class SpendResult:
    new_balance: int
    credits_deducted: int
    resource: Any = None
    entries: List[LedgerEntry] = field(default_factory=list)


class SpendCoordinator:
    """
    Stateless coordinator; one instance is shared by all requests.

    Operations:
        - spend():        single charge
        - spend_bundle(): several charges checked as one total
        - adjust():       admin credit correction, may go negative
    """

    async def spend(
        self,
        account_id: str,
        cost: int,
        kind: str,
        reason: str,
        action: Optional[SpendAction] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> SpendResult:
        """
        Debit `cost` credits and run `action` atomically.

        Raises:
            ValidationError: negative cost or unknown kind
            NotFoundError: the account does not exist
            InsufficientCreditsError: balance below cost (402)
            Anything raised by `action` (after rolling back the debit)
        """
        charge = Charge(
            cost=cost,
            kind=kind,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        return await self.spend_bundle(account_id, [charge], action)

    async def spend_bundle(
        self,
        account_id: str,
        charges: Sequence[Charge],
        action: Optional[SpendAction] = None,
    ) -> SpendResult:
        """
        Debit several charges and run `action` in one transaction.

        The guarded total (every charge except admin adjustments) is checked
        against the balance once, up front, so the client sees the full
        requirement in the 402 details. Zero-cost charges write no entry.
        """
        self._validate(charges)
        guarded_total = sum(c.cost for c in charges if c.kind != EntryKind.ADMIN_ADJUSTMENT)
        total = sum(c.cost for c in charges)

        try:
            async with transaction(f"spend:{account_id}") as session:
                account = await ledger_store.lock_account(session, account_id)

                if account.balance < guarded_total:
                    raise InsufficientCreditsError(
                        current=account.balance,
                        required=guarded_total,
                        context={"account_id": account_id},
                    )

                entries: List[LedgerEntry] = []
                for charge in charges:
                    if charge.cost == 0:
                        continue
                    try:
                        entry = await ledger_store.append_entry(
                            session,
                            account_id=account_id,
                            delta=-charge.cost,
                            kind=charge.kind,
                            reason=charge.reason,
                            reference_type=charge.reference_type,
                            reference_id=charge.reference_id,
                            allow_negative=charge.kind == EntryKind.ADMIN_ADJUSTMENT,
                        )
                    except InsufficientCreditsError as e:
                        # Lost the race to a concurrent spend after the pre-check
                        raise InsufficientCreditsError(
                            current=e.current,
                            required=guarded_total,
                            context={"account_id": account_id},
                        ) from None
                    entries.append(entry)

                resource = await action(session, account) if action else None
                new_balance = await ledger_store.read_balance(session, account_id)

        except InsufficientCreditsError as e:
            logger.info(
                "Spend rejected: account=%s required=%d current=%d",
                account_id,
                e.required,
                e.current,
            )
            raise
        except SummarifyError:
            raise
        except SQLAlchemyError as e:
            logger.error("Spend failed for account %s: %s", account_id, str(e), exc_info=True)
            raise DatabaseError(
                message="Could not complete the charge. Nothing was debited.",
                context={"account_id": account_id},
            ) from e

        logger.info(
            "Spend committed: account=%s deducted=%d balance=%d kinds=%s",
            account_id,
            total,
            new_balance,
            ",".join(c.kind for c in charges),
        )
        return SpendResult(
            new_balance=new_balance,
            credits_deducted=total,
            resource=resource,
            entries=entries,
        )

    async def adjust(
        self,
        account_id: str,
        delta: int,
        reason: str,
        kind: str = EntryKind.ADMIN_ADJUSTMENT,
    ) -> SpendResult:
        """
        Administrative credit correction of `delta` (either sign).

        The only path allowed to drive a balance negative.
        """
        if delta == 0:
            raise ValidationError("Adjustment delta must be non-zero", field="delta")
        if kind not in EntryKind.ALL:
            raise ValidationError(f"Unknown ledger entry kind '{kind}'", field="kind")
        if not reason or not reason.strip():
            raise ValidationError("An adjustment needs a reason", field="reason")

        try:
            async with transaction(f"adjust:{account_id}") as session:
                await ledger_store.lock_account(session, account_id)
                entry = await ledger_store.append_entry(
                    session,
                    account_id=account_id,
                    delta=delta,
                    kind=kind,
                    reason=reason.strip(),
                    allow_negative=True,
                )
                new_balance = await ledger_store.read_balance(session, account_id)
        except SummarifyError:
            raise
        except SQLAlchemyError as e:
            logger.error("Adjustment failed for account %s: %s", account_id, str(e), exc_info=True)
            raise DatabaseError(context={"account_id": account_id}) from e

        logger.warning(
            "Admin adjustment: account=%s delta=%+d balance=%d reason=%r",
            account_id,
            delta,
            new_balance,
            reason,
        )
        return SpendResult(
            new_balance=new_balance,
            credits_deducted=max(0, -delta),
            entries=[entry],
        )

    @staticmethod
    def _validate(charges: Sequence[Charge]) -> None:
        if not charges:
            raise ValidationError("A spend needs at least one charge")
        for charge in charges:
            if not isinstance(charge.cost, int) or isinstance(charge.cost, bool) or charge.cost < 0:
                raise ValidationError("Cost must be a non-negative integer", field="cost")
            if charge.kind not in EntryKind.ALL:
                raise ValidationError(f"Unknown ledger entry kind '{charge.kind}'", field="kind")


# ── Singleton Instance ────────────────────────────────────────────────────
spend_coordinator = SpendCoordinator()
