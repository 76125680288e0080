"""
Summarify Backend — Billable Job Tracker
==========================================

What:  State transitions of BillableJob rows after the spend that created
       them has committed: claim, complete, fail, refund, recovery scan.
How:   Each transition is one conditional UPDATE keyed by job id inside its
       own short transaction. The WHERE clause carries the expected state,
       so a transition that lost a race (or targets a terminal job) matches
       zero rows and reports False instead of overwriting anything.
Who:   JobRunner (claim / complete / fail / recovery), admin refunds.

Transitions:
    claim     pending, lease empty or expired  → lease taken, attempts + 1
    complete  pending                           → completed (+ result)
    fail      pending                           → failed (+ error_message)
    abandon   pending, attempts exhausted       → failed ("abandoned")
    refund    failed, not yet refunded          → refunded_at stamped, +cost entry

None of these touch the account row except refund, so a running summary
never serializes against other spends of the same account.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError

from summarify.config import settings
from summarify.database import transaction
from summarify.exceptions import ConflictError, NotFoundError
from summarify.models._types import utcnow
from summarify.models.billable_job import BillableJob, JobStatus
from summarify.models.ledger_entry import EntryKind
from summarify.services.ledger_store import ledger_store

logger = logging.getLogger(__name__)

ABANDONED_MESSAGE = "Summary generation was abandoned after repeated interrupted attempts"


@dataclass
class RefundResult:
    job_id: uuid.UUID
    account_id: str
    credits_refunded: int
    new_balance: int
    refunded_at: datetime


class JobTracker:

    def _lease_cutoff(self, now: datetime) -> datetime:
        return now - timedelta(seconds=settings.job_lease_seconds)

    def _claimable(self, now: datetime):
        return or_(
            BillableJob.claimed_at.is_(None),
            BillableJob.claimed_at < self._lease_cutoff(now),
        )

    async def claim(self, job_id: uuid.UUID) -> bool:
        """
        Take the lease on a pending job.

        Returns False when the job is terminal, already leased by another
        worker, or has used up settings.job_max_attempts.
        """
        now = utcnow()
        async with transaction(f"job_claim:{job_id}") as session:
            result = await session.execute(
                update(BillableJob)
                .where(
                    BillableJob.id == job_id,
                    BillableJob.status == JobStatus.PENDING,
                    BillableJob.attempts < settings.job_max_attempts,
                    self._claimable(now),
                )
                .values(
                    claimed_at=now,
                    attempts=BillableJob.attempts + 1,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            claimed = result.rowcount == 1

        if claimed:
            logger.info("Job %s claimed", job_id)
        else:
            logger.debug("Job %s not claimable", job_id)
        return claimed

    async def complete(self, job_id: uuid.UUID, result_text: str) -> bool:
        """
        pending → completed. A second call is a no-op returning False.
        """
        changed = await self._finish(
            job_id,
            status=JobStatus.COMPLETED,
            result=result_text,
            error_message=None,
        )
        if changed:
            logger.info("Job %s completed (%d chars)", job_id, len(result_text))
        else:
            logger.info("Ignoring completion of job %s: already terminal", job_id)
        return changed

    async def fail(self, job_id: uuid.UUID, error_info: str) -> bool:
        """
        pending → failed. The debit stays; no refund is issued.
        """
        changed = await self._finish(
            job_id,
            status=JobStatus.FAILED,
            result=None,
            error_message=error_info,
        )
        if changed:
            logger.warning("Job %s failed: %s", job_id, error_info)
        else:
            logger.info("Ignoring failure of job %s: already terminal", job_id)
        return changed

    async def _finish(self, job_id: uuid.UUID, status: str, result, error_message) -> bool:
        now = utcnow()
        async with transaction(f"job_finish:{job_id}") as session:
            outcome = await session.execute(
                update(BillableJob)
                .where(
                    BillableJob.id == job_id,
                    BillableJob.status == JobStatus.PENDING,
                )
                .values(
                    status=status,
                    result=result,
                    error_message=error_message,
                    completed_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            return outcome.rowcount == 1

    async def find_recoverable(self) -> List[uuid.UUID]:
        """
        Pending jobs with no live lease.

        Jobs among them that already used every attempt are failed as
        abandoned first; the rest are returned for re-dispatch.
        """
        now = utcnow()
        async with transaction("job_recovery_scan") as session:
            abandoned = await session.execute(
                update(BillableJob)
                .where(
                    BillableJob.status == JobStatus.PENDING,
                    BillableJob.attempts >= settings.job_max_attempts,
                    self._claimable(now),
                )
                .values(
                    status=JobStatus.FAILED,
                    error_message=ABANDONED_MESSAGE,
                    completed_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if abandoned.rowcount:
                logger.warning("Abandoned %d jobs that exhausted their attempts", abandoned.rowcount)

            result = await session.execute(
                select(BillableJob.id)
                .where(
                    BillableJob.status == JobStatus.PENDING,
                    self._claimable(now),
                )
                .order_by(BillableJob.created_at)
            )
            return list(result.scalars().all())

    async def refund_job(self, job_id: uuid.UUID, reason: str = "") -> RefundResult:
        """
        Explicit compensating credit for a failed job.

        Stamps refunded_at with a compare-and-set first, then appends a
        `refund` entry of +cost_charged keyed "refund:<job id>".

        Raises:
            NotFoundError: unknown job
            ConflictError: job is not failed, or was already refunded
        """
        now = utcnow()
        try:
            async with transaction(f"refund:{job_id}") as session:
                job = await session.get(BillableJob, job_id)
                if job is None:
                    raise NotFoundError(resource="job", resource_id=str(job_id))
                if job.status != JobStatus.FAILED:
                    raise ConflictError(
                        "Only failed jobs can be refunded",
                        context={"job_id": str(job_id), "status": job.status},
                    )

                await ledger_store.lock_account(session, job.account_id)

                stamped = await session.execute(
                    update(BillableJob)
                    .where(
                        BillableJob.id == job_id,
                        BillableJob.status == JobStatus.FAILED,
                        BillableJob.refunded_at.is_(None),
                    )
                    .values(refunded_at=now, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if stamped.rowcount != 1:
                    raise ConflictError(
                        "Job has already been refunded",
                        context={"job_id": str(job_id)},
                    )

                if job.cost_charged > 0:
                    await ledger_store.append_entry(
                        session,
                        account_id=job.account_id,
                        delta=job.cost_charged,
                        kind=EntryKind.REFUND,
                        reason=reason or f"Refund for failed summary job {job_id}",
                        reference_type="job",
                        reference_id=str(job_id),
                        idempotency_key=f"refund:{job_id}",
                    )
                new_balance = await ledger_store.read_balance(session, job.account_id)
        except IntegrityError as e:
            raise ConflictError(
                "Job has already been refunded",
                context={"job_id": str(job_id)},
            ) from e

        logger.warning(
            "Refunded job %s: account=%s credits=%d",
            job_id,
            job.account_id,
            job.cost_charged,
        )
        return RefundResult(
            job_id=job_id,
            account_id=job.account_id,
            credits_refunded=job.cost_charged,
            new_balance=new_balance,
            refunded_at=now,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
job_tracker = JobTracker()
