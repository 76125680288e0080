"""
Summarify Backend — Summary Job Runner
========================================

What:  Background execution of pending summary jobs.
How:   dispatch() starts a supervised asyncio task per job. The task claims
       the job's lease, loads and cleans the transcript, calls the AI
       adapter outside any transaction, and records the outcome through
       JobTracker. Tasks are tracked so shutdown can cancel them and so
       failures are logged instead of vanishing.
Who:   TranscriptService and SummaryService dispatch after their spend
       commits; the lifespan runs recover_pending() at startup and from the
       periodic sweeper.

Durability:
    The BillableJob row is the source of truth, not the task. A process
    that dies mid-job leaves the row pending with a lease; once the lease
    expires the next recovery pass dispatches it again. After
    settings.job_max_attempts claims the job is failed as abandoned.

No retry happens here. Whatever the AI adapter raises fails the job and
the credits stay debited (see JobTracker.refund_job for the admin path).
"""

import asyncio
import logging
import uuid
from typing import Optional, Set

from sqlalchemy import select

from summarify.database import async_session_factory
from summarify.exceptions import SummarifyError
from summarify.models.billable_job import BillableJob, JobStatus
from summarify.models.transcript import Transcript
from summarify.services.gemini_service import gemini_service
from summarify.services.job_tracker import job_tracker
from summarify.services.llm_base import LLMService
from summarify.services.transcript_cleaner import (
    EMPTY_MEETING_SUMMARY,
    build_prompt,
    clean_transcript,
    truncate_for_model,
)

logger = logging.getLogger(__name__)


class JobRunner:
    """
    Supervises summary tasks for one process.

    Attributes:
        llm:  AI completion collaborator (replaced by a fake in tests)
    """

    def __init__(self, llm: LLMService):
        self.llm = llm
        self._tasks: Set[asyncio.Task] = set()
        self._inflight: Set[uuid.UUID] = set()

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    def dispatch(self, job_id: uuid.UUID) -> Optional[asyncio.Task]:
        """
        Start the job in the background; returns None if it is already running here.

        Must be called after the creating transaction committed.
        """
        if job_id in self._inflight:
            return None

        task = asyncio.create_task(self.run(job_id), name=f"summary-job-{job_id}")
        self._inflight.add(job_id)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(job_id, t))
        logger.info("Dispatched job %s", job_id)
        return task

    def _on_done(self, job_id: uuid.UUID, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._inflight.discard(job_id)
        if task.cancelled():
            logger.info("Job %s task cancelled; it stays pending for recovery", job_id)
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Job %s task crashed; it stays pending for recovery",
                job_id,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def run(self, job_id: uuid.UUID) -> Optional[str]:
        """
        Execute one job end to end.

        Returns the terminal status it recorded, or None when the job could
        not be claimed (terminal, leased elsewhere, or out of attempts).
        """
        if not await job_tracker.claim(job_id):
            return None

        try:
            job, transcript = await self._load(job_id)
            cleaned = clean_transcript(transcript.transcript_json, transcript.transcript_text)
            if not cleaned.strip():
                logger.info("Job %s: transcript empty after cleaning", job_id)
                summary = EMPTY_MEETING_SUMMARY
            else:
                summary = await self.llm.generate(
                    truncate_for_model(cleaned),
                    build_prompt(job.custom_prompt),
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if isinstance(e, SummarifyError):
                message = e.message
            else:
                logger.error("Job %s: unexpected error", job_id, exc_info=True)
                message = str(e) or type(e).__name__
            await job_tracker.fail(job_id, message)
            return JobStatus.FAILED

        await job_tracker.complete(job_id, summary)
        return JobStatus.COMPLETED

    async def _load(self, job_id: uuid.UUID):
        async with async_session_factory() as session:
            row = (
                await session.execute(
                    select(BillableJob, Transcript)
                    .join(Transcript, Transcript.id == BillableJob.input_ref)
                    .where(BillableJob.id == job_id)
                )
            ).one_or_none()
        if row is None:
            raise SummarifyError("Transcript for this job no longer exists")
        return row[0], row[1]

    async def recover_pending(self) -> int:
        """Dispatch every pending job without a live lease. Returns how many."""
        job_ids = await job_tracker.find_recoverable()
        dispatched = sum(1 for job_id in job_ids if self.dispatch(job_id) is not None)
        if dispatched:
            logger.info("Recovery dispatched %d pending jobs", dispatched)
        return dispatched

    async def wait_idle(self) -> None:
        """Wait until every running job task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel running tasks; their jobs remain pending and are recovered later."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d running job tasks", len(tasks))


# ── Singleton Instance ────────────────────────────────────────────────────
job_runner = JobRunner(gemini_service)
