"""
Summarify Backend — Admin Routes
==================================

What:  Operator tools: credit adjustments, refunds of failed jobs, and the
       cached-balance audit/rebuild.
Who:   Support staff, through an internal console holding the admin key.

Every route here requires X-Admin-Key (see deps.require_admin).
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends

from summarify.routes.deps import require_admin
from summarify.schemas.admin import (
    AdjustmentRequest,
    AdjustmentResponse,
    AuditResponse,
    RefundRequest,
    RefundResponse,
)
from summarify.schemas.common import ErrorResponse
from summarify.services.balance_service import balance_service
from summarify.services.job_tracker import job_tracker
from summarify.services.spend_coordinator import spend_coordinator

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
    responses={403: {"description": "Admin key missing or wrong", "model": ErrorResponse}},
)


@router.post(
    "/adjustments",
    response_model=AdjustmentResponse,
    responses={
        400: {"description": "Zero delta or missing reason", "model": ErrorResponse},
        404: {"description": "Account not found", "model": ErrorResponse},
    },
    summary="Credit or debit an account by hand",
)
async def adjust(body: AdjustmentRequest) -> AdjustmentResponse:
    result = await spend_coordinator.adjust(body.account_id, body.delta, body.reason)
    return AdjustmentResponse(
        account_id=body.account_id,
        delta=body.delta,
        new_balance=result.new_balance,
        entry_id=result.entries[0].id,
    )


@router.post(
    "/jobs/{job_id}/refund",
    response_model=RefundResponse,
    responses={
        404: {"description": "Job not found", "model": ErrorResponse},
        409: {"description": "Job not failed, or already refunded", "model": ErrorResponse},
    },
    summary="Refund the cost of a failed summary job",
)
async def refund_job(job_id: UUID, body: RefundRequest = RefundRequest()) -> RefundResponse:
    result = await job_tracker.refund_job(job_id, reason=body.reason)
    return RefundResponse(
        job_id=result.job_id,
        account_id=result.account_id,
        credits_refunded=result.credits_refunded,
        new_balance=result.new_balance,
        refunded_at=result.refunded_at,
    )


@router.get(
    "/accounts/{account_id}/audit",
    response_model=AuditResponse,
    responses={404: {"description": "Account not found", "model": ErrorResponse}},
    summary="Compare the cached balance with the ledger",
)
async def audit_account(account_id: str) -> AuditResponse:
    audit = await balance_service.audit_account(account_id)
    return AuditResponse(
        account_id=audit.account_id,
        cached=audit.cached,
        ledger=audit.ledger,
        consistent=audit.consistent,
    )


@router.post(
    "/accounts/{account_id}/rebuild",
    response_model=AuditResponse,
    responses={404: {"description": "Account not found", "model": ErrorResponse}},
    summary="Rewrite the cached balance from the ledger",
)
async def rebuild_balance(account_id: str) -> AuditResponse:
    audit = await balance_service.rebuild_balance(account_id)
    return AuditResponse(
        account_id=audit.account_id,
        cached=audit.cached,
        ledger=audit.ledger,
        consistent=audit.consistent,
    )
