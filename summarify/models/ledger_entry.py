"""
Summarify Backend — Ledger Entry SQLAlchemy Model
===================================================

What:  ORM model for `ledger_entries`, the append-only credit log.
How:   One row per balance change. Rows are inserted by LedgerStore and are
       never updated or deleted.

Invariant:
    For every account, accounts.balance == SUM(ledger_entries.delta).

Idempotency:
    `idempotency_key` is unique when present. Grants carry
    "payment:<intent id>", refunds carry "refund:<job id>", so a second
    attempt to materialize the same event fails at the database even if a
    status gate upstream were bypassed.

Query Patterns:
    - History page: WHERE account_id = :id ORDER BY created_at DESC
      LIMIT :limit OFFSET :offset → idx_ledger_account_created
    - Balance audit / stats: SUM over WHERE account_id = :id
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from summarify.database import Base
from summarify.models._types import utcnow


class EntryKind:
    """Cause category of a ledger entry."""

    PURCHASE = "purchase"
    AI_SUMMARY = "ai_summary"
    TRANSCRIPT_STORAGE = "transcript_storage"
    ADMIN_ADJUSTMENT = "admin_adjustment"
    REFUND = "refund"

    ALL = frozenset({PURCHASE, AI_SUMMARY, TRANSCRIPT_STORAGE, ADMIN_ADJUSTMENT, REFUND})


class LedgerEntry(Base):
    """
    Immutable record of one balance change.

    delta > 0 is a credit (purchase, refund, starting balance),
    delta < 0 is a debit (transcript storage, AI summary).
    """

    __tablename__ = "ledger_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    account_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    delta: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Signed credit amount: positive = credit, negative = debit",
    )

    kind: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="purchase, ai_summary, transcript_storage, admin_adjustment, refund",
    )

    reason: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        comment="Human-readable cause shown in the credit history",
    )

    # What the entry paid for or materialized: transcript, job, payment_intent
    reference_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    reference_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    idempotency_key: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
        comment="Unique key of the external event this entry materializes",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_ledger_account_created", "account_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(account_id='{self.account_id}', delta={self.delta}, "
            f"kind='{self.kind}')>"
        )
