"""
Summarify Backend — Billable Job SQLAlchemy Model
===================================================

What:  ORM model for `billable_jobs`, paid work whose outcome arrives later
       (AI meeting summaries).
How:   Inserted `pending` by the Spend Coordinator in the same transaction
       as the debit. Afterwards only the job tracker touches the row, one
       conditional UPDATE at a time, keyed by id.

State machine:
    pending ──(success)──▶ completed
    pending ──(error)────▶ failed
    Terminal states are final. `not_requested` is never stored; it is the
    summary status reported for a transcript that has no job.

Claiming:
    A worker claims a pending job by setting `claimed_at` (the lease start)
    and bumping `attempts`, conditional on the lease being empty or expired.
    A job left pending by a crash becomes claimable again once its lease
    runs out; after settings.job_max_attempts claims it is failed.

Refunds:
    `refunded_at` is stamped when an admin refunds a failed job; the refund
    itself is a separate `refund` ledger entry.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from summarify.database import Base
from summarify.models._types import utcnow


class JobStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    NOT_REQUESTED = "not_requested"

    TERMINAL = frozenset({COMPLETED, FAILED})
    # A transcript with a job in one of these states cannot request another
    BLOCKING = frozenset({PENDING, COMPLETED})


class BillableJob(Base):
    """One paid AI summary request."""

    __tablename__ = "billable_jobs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    account_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    input_ref: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("transcripts.id"),
        nullable=False,
        comment="Transcript being summarized",
    )

    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    custom_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=JobStatus.PENDING,
        server_default=text("'pending'"),
        comment="pending, completed, failed",
    )

    cost_charged: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Credits debited when the job was created",
    )

    result: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Generated summary; set only on completion",
    )

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Number of times a worker claimed this job",
    )

    claimed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
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
        server_default=text("CURRENT_TIMESTAMP"),
    )

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    refunded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("idx_jobs_input_ref", "input_ref"),
        Index("idx_jobs_status_claimed", "status", "claimed_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in JobStatus.TERMINAL

    def __repr__(self) -> str:
        return f"<BillableJob(id={self.id}, status='{self.status}')>"
