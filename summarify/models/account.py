"""
Summarify Backend — Account SQLAlchemy Model
==============================================

What:  ORM model for the `accounts` table: one row per authenticated user.
How:   The primary key is the identity provider's subject, taken as-is from
       the trusted X-Account-ID header. The core never authenticates.
Who:   Locked and updated by the Spend Coordinator and the Settlement
       Reconciler; read by the balance/history query service.

Balance column:
    `balance` is a cache of SUM(ledger_entries.delta) for the account.
    It is written in exactly one place, LedgerStore.append_entry(), in the
    same transaction that inserts the entry it reflects. Any divergence
    between the column and the log is a correctness bug
    (see BalanceService.audit_account).

Row lock:
    Every spend and every settlement takes SELECT ... FOR UPDATE on this row
    first, so operations on one account are serialized while different
    accounts proceed in parallel.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from summarify.database import Base
from summarify.models._types import utcnow


class Account(Base):
    """
    A credit-holding account.

    Lifecycle:
        1. Created by AccountService.ensure_account() on first authentication,
           together with the starting-balance ledger entry
        2. Balance changes only through ledger appends
        3. Never deleted (ledger entries reference it)
    """

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
        comment="Stable identity from the identity provider",
    )

    email: Mapped[Optional[str]] = mapped_column(
        String(320),
        nullable=True,
        comment="Contact email reported at first authentication",
    )

    display_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    # Signed: only admin adjustments may push it below zero.
    balance: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Cached SUM(delta) of this account's ledger entries",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return f"<Account(id='{self.id}', balance={self.balance})>"
