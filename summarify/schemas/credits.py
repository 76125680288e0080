"""
Summarify Backend — Credit Balance and History Schemas
========================================================

Read-side contracts of the balance/history query service.
"""

import uuid
from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from summarify.schemas.common import Pagination


class BalanceResponse(BaseModel):
    """Returned by GET /api/credits/balance."""
    balance: int = Field(description="Current credit balance")


class LedgerEntryResponse(BaseModel):
    """
    One ledger entry as shown in the credit history.

    delta > 0 is a credit, delta < 0 a debit.
    """
    id: uuid.UUID
    delta: int = Field(description="Signed credit amount")
    kind: str = Field(description="purchase, ai_summary, transcript_storage, admin_adjustment, refund")
    reason: str
    created_at: datetime

    model_config = {"from_attributes": True}


class HistoryStats(BaseModel):
    """
    Aggregates over the whole ledger of the account.

    usage_percentage = min(100, round(total_debited / (current_balance + total_debited) * 100)),
    0 when the denominator is 0.
    """
    current_balance: int
    total_credited: int
    total_debited: int
    total_transactions: int
    usage_percentage: int


class HistoryResponse(BaseModel):
    """Returned by GET /api/credits/history (newest entries first)."""
    entries: List[LedgerEntryResponse]
    pagination: Pagination
    stats: HistoryStats
