"""
Summarify Backend — Admin Schemas
===================================
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class AdjustmentRequest(BaseModel):
    """Body of POST /api/admin/adjustments. delta may be negative."""
    account_id: str = Field(min_length=1, max_length=128)
    delta: int
    reason: str = Field(min_length=1, max_length=500)


class AdjustmentResponse(BaseModel):
    account_id: str
    delta: int
    new_balance: int
    entry_id: uuid.UUID


class RefundRequest(BaseModel):
    reason: str = Field(default="", max_length=500)


class RefundResponse(BaseModel):
    job_id: uuid.UUID
    account_id: str
    credits_refunded: int
    new_balance: int
    refunded_at: datetime


class AuditResponse(BaseModel):
    """Cached balance versus the sum of the ledger."""
    account_id: str
    cached: int
    ledger: int
    consistent: bool
