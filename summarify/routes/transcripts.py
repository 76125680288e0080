"""
Summarify Backend — Transcript Routes
=======================================

What:  Store a meeting transcript (paid) and read transcripts back.
How:   POST delegates to TranscriptService.store_transcript, which debits
       storage (and optionally the AI summary) atomically with the insert.
Who:   Called by the recorder when a meeting ends, and by the history UI.

Caching:
    GET /api/transcripts/{id} is private and never cached: the summary
    state of a transcript changes while its job runs.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response

from summarify.routes.deps import get_account_id
from summarify.schemas.common import ErrorResponse
from summarify.schemas.transcripts import (
    TranscriptCreate,
    TranscriptCreateResponse,
    TranscriptListResponse,
    TranscriptResponse,
)
from summarify.services.transcript_service import transcript_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/transcripts", tags=["Transcripts"])


@router.post(
    "",
    status_code=201,
    response_model=TranscriptCreateResponse,
    responses={
        400: {"description": "Transcript data missing or invalid", "model": ErrorResponse},
        401: {"description": "Missing X-Account-ID", "model": ErrorResponse},
        402: {"description": "Not enough credits", "model": ErrorResponse},
    },
    summary="Store a transcript and optionally queue its summary",
    description=(
        "Charges ceil(duration / minutes-per-credit) credits for storage, plus the "
        "AI summary cost when should_summarize is set. Nothing is stored when the "
        "balance does not cover the total."
    ),
)
async def create_transcript(
    payload: TranscriptCreate,
    account_id: str = Depends(get_account_id),
) -> TranscriptCreateResponse:
    return await transcript_service.store_transcript(account_id, payload)


@router.get(
    "",
    response_model=TranscriptListResponse,
    responses={
        400: {"description": "Invalid pagination", "model": ErrorResponse},
        401: {"description": "Missing X-Account-ID", "model": ErrorResponse},
    },
    summary="List the caller's transcripts, newest first",
)
async def list_transcripts(
    response: Response,
    page: int = Query(default=1, description="1-based page number"),
    limit: int = Query(default=20, description="Items per page"),
    account_id: str = Depends(get_account_id),
) -> TranscriptListResponse:
    result = await transcript_service.list_transcripts(account_id, page=page, limit=limit)
    response.headers["X-Total-Count"] = str(result.pagination.total)
    return result


@router.get(
    "/{transcript_id}",
    response_model=TranscriptResponse,
    responses={
        401: {"description": "Missing X-Account-ID", "model": ErrorResponse},
        404: {"description": "Transcript not found", "model": ErrorResponse},
    },
    summary="Get one transcript with its summary state",
)
async def get_transcript(
    transcript_id: UUID,
    response: Response,
    account_id: str = Depends(get_account_id),
) -> TranscriptResponse:
    result = await transcript_service.get_transcript(account_id, transcript_id)
    response.headers["Cache-Control"] = "private, no-store"
    return result
