"""
Summarify Backend — Transcript Schemas
========================================

Request and response contracts for storing and reading meeting transcripts.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from summarify.schemas.common import Pagination


class TranscriptCreate(BaseModel):
    """
    Body of POST /api/transcripts.

    Cost:
        ceil(meeting_duration_minutes / 30) credits for storage,
        plus the AI summary cost when should_summarize is true.
    """
    title: Optional[str] = Field(default=None, max_length=255)
    transcript_text: Optional[str] = Field(default=None, description="Plain-text capture")
    transcript_json: Optional[Dict[str, Any]] = Field(
        default=None,
        description='Structured capture: {"entries": [{"speaker": ..., "text": ...}]}',
    )
    meeting_metadata: Optional[Dict[str, Any]] = None
    meeting_duration_minutes: Optional[int] = Field(
        default=None,
        description="Meeting length; drives the storage cost",
    )
    should_summarize: bool = Field(default=False, description="Also request an AI summary")
    custom_prompt: Optional[str] = Field(default=None, max_length=4000)


class CostBreakdown(BaseModel):
    transcript_credits: int
    summary_credits: int
    duration_minutes: int
    total_cost: int


class TranscriptCreateResponse(BaseModel):
    """Returned by POST /api/transcripts with HTTP 201."""
    transcript_id: uuid.UUID
    status: str = Field(description="processing (summary queued) or transcript_saved")
    job_id: Optional[uuid.UUID] = None
    credits_deducted: int
    remaining_credits: int
    breakdown: CostBreakdown


class TranscriptResponse(BaseModel):
    """Full transcript with the state of its latest summary job."""
    id: uuid.UUID
    title: str
    transcript_text: str
    transcript_json: Any
    meeting_metadata: Optional[Any] = None
    duration_minutes: Optional[int] = None
    created_at: datetime
    summary_status: str = Field(description="not_requested, pending, completed, failed")
    summary_job_id: Optional[uuid.UUID] = None
    summary: Optional[str] = None


class TranscriptListItem(BaseModel):
    id: uuid.UUID
    title: str
    duration_minutes: Optional[int] = None
    created_at: datetime
    summary_status: str


class TranscriptListResponse(BaseModel):
    transcripts: List[TranscriptListItem]
    pagination: Pagination
