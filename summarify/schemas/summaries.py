"""
Summarify Backend — Summary Job Schemas
=========================================
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class SummaryRequest(BaseModel):
    """Body of POST /api/summaries."""
    transcript_id: uuid.UUID
    title: Optional[str] = Field(default=None, max_length=255)
    custom_prompt: Optional[str] = Field(default=None, max_length=4000)


class SummaryRequestResponse(BaseModel):
    """
    Returned by POST /api/summaries with HTTP 201.

    The summary is generated in the background; poll
    GET /api/summaries/{job_id} until status is completed or failed.
    """
    job_id: uuid.UUID
    transcript_id: uuid.UUID
    status: str = Field(default="processing")
    credits_deducted: int
    remaining_credits: int


class JobResponse(BaseModel):
    """State of one summary job."""
    job_id: uuid.UUID
    transcript_id: uuid.UUID
    status: str = Field(description="pending, completed, failed")
    message: str = Field(description="Human-readable status")
    cost_charged: int
    result: Optional[str] = None
    error_message: Optional[str] = None
    attempts: int
    created_at: datetime
    completed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
