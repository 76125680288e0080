"""
Summarify Backend — Summary Service
=====================================

What:  Paid AI summary requests for stored transcripts, and job polling.
How:   request_summary() spends the summary cost through the Spend
       Coordinator with an action that inserts the pending BillableJob.
       The duplicate check runs inside that action, after the debit, so
       the account lock serializes two simultaneous requests for the same
       transcript and the loser rolls back with a ConflictError.
Who:   /api/summaries routes.

Re-requests:
    A transcript whose latest job failed may be summarized again; the new
    job is charged again. A pending or completed job blocks new requests.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from summarify.database import async_session_factory
from summarify.exceptions import ConflictError, NotFoundError
from summarify.models.account import Account
from summarify.models.billable_job import BillableJob, JobStatus
from summarify.models.ledger_entry import EntryKind
from summarify.models.transcript import Transcript
from summarify.schemas.summaries import JobResponse, SummaryRequestResponse
from summarify.services.job_runner import job_runner
from summarify.services.spend_coordinator import spend_coordinator, summary_cost

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    JobStatus.PENDING: "Summary is being generated",
    JobStatus.COMPLETED: "Summary is ready",
    JobStatus.FAILED: "Summary generation failed. You can request it again.",
}


class SummaryService:

    async def request_summary(
        self,
        account_id: str,
        transcript_id: uuid.UUID,
        title: Optional[str] = None,
        custom_prompt: Optional[str] = None,
    ) -> SummaryRequestResponse:
        """
        Charge for and queue an AI summary of one of the caller's transcripts.

        Raises:
            NotFoundError: transcript absent or owned by another account
            InsufficientCreditsError: balance below the summary cost (402)
            ConflictError: a pending or completed summary already exists (409)
        """
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

        cost = summary_cost()
        job_id = uuid.uuid4()
        job_title = (title or "").strip() or transcript.title

        async def create_job(session: AsyncSession, account: Account) -> BillableJob:
            existing = (
                await session.execute(
                    select(BillableJob.id, BillableJob.status).where(
                        BillableJob.input_ref == transcript_id,
                        BillableJob.status.in_(JobStatus.BLOCKING),
                    )
                )
            ).first()
            if existing is not None:
                raise ConflictError(
                    f"A summary for this transcript is already {existing.status}",
                    context={
                        "transcript_id": str(transcript_id),
                        "job_id": str(existing.id),
                        "status": existing.status,
                    },
                )
            job = BillableJob(
                id=job_id,
                account_id=account.id,
                input_ref=transcript_id,
                title=job_title,
                custom_prompt=custom_prompt,
                status=JobStatus.PENDING,
                cost_charged=cost,
            )
            session.add(job)
            await session.flush()
            return job

        outcome = await spend_coordinator.spend(
            account_id,
            cost=cost,
            kind=EntryKind.AI_SUMMARY,
            reason=f"AI summary generation for meeting: {job_title}",
            action=create_job,
            reference_type="job",
            reference_id=str(job_id),
        )

        job_runner.dispatch(job_id)

        return SummaryRequestResponse(
            job_id=job_id,
            transcript_id=transcript_id,
            status="processing",
            credits_deducted=outcome.credits_deducted,
            remaining_credits=outcome.new_balance,
        )

    async def get_job(self, account_id: str, job_id: uuid.UUID) -> JobResponse:
        """Owner-scoped job poll."""
        async with async_session_factory() as session:
            job = (
                await session.execute(
                    select(BillableJob).where(
                        BillableJob.id == job_id,
                        BillableJob.account_id == account_id,
                    )
                )
            ).scalar_one_or_none()
        if job is None:
            raise NotFoundError(resource="job", resource_id=str(job_id))
        return to_job_response(job)


def to_job_response(job: BillableJob) -> JobResponse:
    return JobResponse(
        job_id=job.id,
        transcript_id=job.input_ref,
        status=job.status,
        message=STATUS_MESSAGES.get(job.status, job.status),
        cost_charged=job.cost_charged,
        result=job.result,
        error_message=job.error_message,
        attempts=job.attempts,
        created_at=job.created_at,
        completed_at=job.completed_at,
        refunded_at=job.refunded_at,
    )


# ── Singleton Instance ────────────────────────────────────────────────────
summary_service = SummaryService()
