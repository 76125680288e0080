"""
Summarify Backend — Credit Routes
===================================

What:  Balance and paginated credit history for the caller.
Who:   Dashboard header (balance) and the billing page (history).
"""

import logging

from fastapi import APIRouter, Depends, Query

from summarify.routes.deps import get_account_id
from summarify.schemas.common import ErrorResponse
from summarify.schemas.credits import BalanceResponse, HistoryResponse
from summarify.services.balance_service import balance_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/credits", tags=["Credits"])


@router.get(
    "/balance",
    response_model=BalanceResponse,
    responses={
        401: {"description": "Missing X-Account-ID", "model": ErrorResponse},
        404: {"description": "Account not found", "model": ErrorResponse},
    },
    summary="Current credit balance",
)
async def get_balance(account_id: str = Depends(get_account_id)) -> BalanceResponse:
    return BalanceResponse(balance=await balance_service.get_balance(account_id))


@router.get(
    "/history",
    response_model=HistoryResponse,
    responses={
        400: {"description": "Invalid pagination", "model": ErrorResponse},
        401: {"description": "Missing X-Account-ID", "model": ErrorResponse},
        404: {"description": "Account not found", "model": ErrorResponse},
    },
    summary="Credit history with usage statistics",
)
async def get_history(
    page: int = Query(default=1, description="1-based page number"),
    limit: int = Query(default=20, description="Entries per page"),
    account_id: str = Depends(get_account_id),
) -> HistoryResponse:
    return await balance_service.get_history(account_id, page=page, limit=limit)
