"""
Summarify Backend — Summary Routes
====================================

What:  Request an AI summary for a stored transcript and poll its job.
How:   POST debits the summary cost and inserts a pending job in one
       transaction; the work itself runs in the background. Clients poll
       GET /api/summaries/{job_id} until the job is completed or failed.

Request Flow:
    POST /api/summaries ──▶ 201 {job_id, status: "processing"}
    GET  /api/summaries/{job_id} ──▶ {status: pending | completed | failed}
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends

from summarify.routes.deps import get_account_id
from summarify.schemas.common import ErrorResponse
from summarify.schemas.summaries import JobResponse, SummaryRequest, SummaryRequestResponse
from summarify.services.summary_service import summary_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/summaries", tags=["Summaries"])


@router.post(
    "",
    status_code=201,
    response_model=SummaryRequestResponse,
    responses={
        401: {"description": "Missing X-Account-ID", "model": ErrorResponse},
        402: {"description": "Not enough credits", "model": ErrorResponse},
        404: {"description": "Transcript not found", "model": ErrorResponse},
        409: {"description": "A summary is already pending or completed", "model": ErrorResponse},
    },
    summary="Request an AI summary of a transcript",
)
async def request_summary(
    body: SummaryRequest,
    account_id: str = Depends(get_account_id),
) -> SummaryRequestResponse:
    return await summary_service.request_summary(
        account_id,
        body.transcript_id,
        title=body.title,
        custom_prompt=body.custom_prompt,
    )


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    responses={
        401: {"description": "Missing X-Account-ID", "model": ErrorResponse},
        404: {"description": "Job not found", "model": ErrorResponse},
    },
    summary="Poll a summary job",
)
async def get_job(
    job_id: UUID,
    account_id: str = Depends(get_account_id),
) -> JobResponse:
    return await summary_service.get_job(account_id, job_id)
