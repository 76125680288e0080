"""
Summarify Backend — Transcript SQLAlchemy Model
=================================================

What:  ORM model for `transcripts`, the stored meeting transcripts.
How:   Inserted by TranscriptService inside the spend transaction that pays
       for the storage, so a transcript row exists iff its debit committed.

Columns:
    transcript_text   plain text as captured by the client
    transcript_json   structured capture ({"entries": [{"speaker", "text"}]})
    meeting_metadata  free-form client metadata (meeting URL, participants)
    duration_minutes  drives the storage cost: ceil(minutes / 30)
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from summarify.database import Base
from summarify.models._types import utcnow


class Transcript(Base):
    """A stored meeting transcript owned by one account."""

    __tablename__ = "transcripts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    account_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    transcript_text: Mapped[str] = mapped_column(Text, nullable=False)

    transcript_json: Mapped[Any] = mapped_column(JSON, nullable=False)

    meeting_metadata: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_transcripts_account_created", "account_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Transcript(id={self.id}, account_id='{self.account_id}')>"
