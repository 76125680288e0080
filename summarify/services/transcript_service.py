"""
Summarify Backend — Transcript Service
========================================

What:  Stores meeting transcripts (a paid action) and reads them back.
How:   store_transcript() prices the request up front, then hands the
       charges to the Spend Coordinator together with an action that
       inserts the Transcript and, when a summary was requested, its
       pending BillableJob. The job is dispatched only after that
       transaction committed.
Who:   /api/transcripts routes.

Flow (POST /api/transcripts with should_summarize=true):
    ┌──────────┐    ┌──────────────────────────────────┐    ┌────────────┐
    │  Price   │───▶│ spend_bundle (one transaction)   │───▶│  dispatch  │
    │ storage +│    │  lock account, 2 debits,         │    │  summary   │
    │ summary  │    │  insert transcript + pending job │    │  job       │
    └──────────┘    └──────────────────────────────────┘    └────────────┘
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from summarify.database import async_session_factory
from summarify.exceptions import NotFoundError, ValidationError
from summarify.models.account import Account
from summarify.models.billable_job import BillableJob, JobStatus
from summarify.models.ledger_entry import EntryKind
from summarify.models.transcript import Transcript
from summarify.schemas.transcripts import (
    CostBreakdown,
    TranscriptCreate,
    TranscriptCreateResponse,
    TranscriptListItem,
    TranscriptListResponse,
    TranscriptResponse,
)
from summarify.services.job_runner import job_runner
from summarify.services.pagination import make_pagination, validate_page
from summarify.services.spend_coordinator import (
    Charge,
    spend_coordinator,
    storage_cost,
    summary_cost,
)

logger = logging.getLogger(__name__)


async def latest_jobs_for(session: AsyncSession, transcript_ids: List[uuid.UUID]) -> Dict[uuid.UUID, BillableJob]:
    """Most recent summary job per transcript; same-tick jobs fall back to id order."""
    if not transcript_ids:
        return {}
    result = await session.execute(
        select(BillableJob)
        .where(BillableJob.input_ref.in_(transcript_ids))
        .order_by(BillableJob.created_at, BillableJob.id)
    )
    latest: Dict[uuid.UUID, BillableJob] = {}
    for job in result.scalars().all():
        latest[job.input_ref] = job
    return latest


class TranscriptService:

    async def store_transcript(self, account_id: str, payload: TranscriptCreate) -> TranscriptCreateResponse:
        """
        Store a transcript and optionally queue its AI summary, atomically with the debit.

        Raises:
            ValidationError: transcript text/JSON missing, negative duration
            InsufficientCreditsError: balance below the total cost (402)
            NotFoundError: account does not exist
        """
        if not payload.transcript_text or not payload.transcript_json:
            raise ValidationError("Transcript data is required", field="transcript_json")

        duration = payload.meeting_duration_minutes or 0
        transcript_credits = storage_cost(duration)
        summary_credits = summary_cost() if payload.should_summarize else 0
        title = (payload.title or "").strip() or (
            f"Meeting on {datetime.now(timezone.utc).strftime('%Y-%m-%d')}"
        )

        transcript_id = uuid.uuid4()
        job_id: Optional[uuid.UUID] = uuid.uuid4() if payload.should_summarize else None

        charges = [
            Charge(
                cost=transcript_credits,
                kind=EntryKind.TRANSCRIPT_STORAGE,
                reason=f"Transcript storage ({duration} minutes): {title}",
                reference_type="transcript",
                reference_id=str(transcript_id),
            )
        ]
        if job_id is not None:
            charges.append(
                Charge(
                    cost=summary_credits,
                    kind=EntryKind.AI_SUMMARY,
                    reason=f"AI summary generation for meeting: {title}",
                    reference_type="job",
                    reference_id=str(job_id),
                )
            )

        async def create_resources(session: AsyncSession, account: Account) -> Transcript:
            transcript = Transcript(
                id=transcript_id,
                account_id=account.id,
                title=title,
                transcript_text=payload.transcript_text,
                transcript_json=payload.transcript_json,
                meeting_metadata=payload.meeting_metadata,
                duration_minutes=payload.meeting_duration_minutes,
            )
            session.add(transcript)
            await session.flush()
            if job_id is not None:
                session.add(
                    BillableJob(
                        id=job_id,
                        account_id=account.id,
                        input_ref=transcript_id,
                        title=title,
                        custom_prompt=payload.custom_prompt,
                        status=JobStatus.PENDING,
                        cost_charged=summary_credits,
                    )
                )
                await session.flush()
            return transcript

        outcome = await spend_coordinator.spend_bundle(account_id, charges, create_resources)

        if job_id is not None:
            job_runner.dispatch(job_id)

        logger.info(
            "Transcript %s stored for %s: %d credits (storage=%d summary=%d)",
            transcript_id,
            account_id,
            outcome.credits_deducted,
            transcript_credits,
            summary_credits,
        )
        return TranscriptCreateResponse(
            transcript_id=transcript_id,
            status="processing" if job_id else "transcript_saved",
            job_id=job_id,
            credits_deducted=outcome.credits_deducted,
            remaining_credits=outcome.new_balance,
            breakdown=CostBreakdown(
                transcript_credits=transcript_credits,
                summary_credits=summary_credits,
                duration_minutes=duration,
                total_cost=transcript_credits + summary_credits,
            ),
        )

    async def get_transcript(self, account_id: str, transcript_id: uuid.UUID) -> TranscriptResponse:
        """Owner-scoped transcript with its latest summary state."""
        async with async_session_factory() as session:
            transcript = (
                await session.execute(
                    select(Transcript).where(
                        Transcript.id == transcript_id,
                        Transcript.account_id == account_id,
                    )
                )
            ).scalar_one_or_none()
            if transcript is None:
                raise NotFoundError(resource="transcript", resource_id=str(transcript_id))
            job = (await latest_jobs_for(session, [transcript.id])).get(transcript.id)

        return TranscriptResponse(
            id=transcript.id,
            title=transcript.title,
            transcript_text=transcript.transcript_text,
            transcript_json=transcript.transcript_json,
            meeting_metadata=transcript.meeting_metadata,
            duration_minutes=transcript.duration_minutes,
            created_at=transcript.created_at,
            summary_status=job.status if job else JobStatus.NOT_REQUESTED,
            summary_job_id=job.id if job else None,
            summary=job.result if job else None,
        )

    async def list_transcripts(self, account_id: str, page: int = 1, limit: int = 20) -> TranscriptListResponse:
        """Newest first, offset-paginated."""
        validate_page(page, limit)
        async with async_session_factory() as session:
            total = (
                await session.execute(
                    select(func.count(Transcript.id)).where(Transcript.account_id == account_id)
                )
            ).scalar_one()
            transcripts = list(
                (
                    await session.execute(
                        select(Transcript)
                        .where(Transcript.account_id == account_id)
                        .order_by(Transcript.created_at.desc(), Transcript.id)
                        .offset((page - 1) * limit)
                        .limit(limit)
                    )
                ).scalars().all()
            )
            jobs = await latest_jobs_for(session, [t.id for t in transcripts])

        items = [
            TranscriptListItem(
                id=t.id,
                title=t.title,
                duration_minutes=t.duration_minutes,
                created_at=t.created_at,
                summary_status=jobs[t.id].status if t.id in jobs else JobStatus.NOT_REQUESTED,
            )
            for t in transcripts
        ]
        return TranscriptListResponse(
            transcripts=items,
            pagination=make_pagination(total, page, limit),
        )


# ── Singleton Instance ────────────────────────────────────────────────────
transcript_service = TranscriptService()
