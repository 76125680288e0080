"""
Summarify Backend — Job Tracker Tests
=======================================

What:  Lifecycle transitions of BillableJob rows.
How:   Jobs are inserted directly (no spend) so each transition can be
       driven by hand; leases are expired by backdating claimed_at.

What we test:
    ✅ claim takes the lease once; a live lease blocks a second claim
    ✅ An expired lease can be re-claimed, up to job_max_attempts
    ✅ complete / fail only move a pending job; terminal jobs never change
    ✅ find_recoverable returns lease-free pending jobs and abandons exhausted ones
    ✅ refund_job: failed jobs only, exactly once, +cost entry
    ✅ The latest job per transcript is stable when timestamps tie
"""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select, update

from conftest import insert_job
from summarify.config import settings
from summarify.database import async_session_factory, transaction
from summarify.exceptions import ConflictError, NotFoundError
from summarify.models._types import utcnow
from summarify.models.billable_job import BillableJob, JobStatus
from summarify.models.ledger_entry import EntryKind, LedgerEntry
from summarify.services.balance_service import balance_service
from summarify.services.job_tracker import ABANDONED_MESSAGE, job_tracker
from summarify.services.transcript_service import latest_jobs_for


async def load_job(job_id: uuid.UUID) -> BillableJob:
    async with async_session_factory() as session:
        return await session.get(BillableJob, job_id)


async def expire_lease(job_id: uuid.UUID) -> None:
    stale = utcnow() - timedelta(seconds=settings.job_lease_seconds + 60)
    async with transaction("test_expire_lease") as session:
        await session.execute(update(BillableJob).where(BillableJob.id == job_id).values(claimed_at=stale))


class TestClaim:

    @pytest.mark.asyncio
    async def test_claim_takes_lease_once(self, make_account):
        account_id = await make_account()
        job_id = await insert_job(account_id)

        assert await job_tracker.claim(job_id) is True
        assert await job_tracker.claim(job_id) is False

        job = await load_job(job_id)
        assert job.attempts == 1
        assert job.claimed_at is not None
        assert job.status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_expired_lease_can_be_reclaimed(self, make_account):
        account_id = await make_account()
        job_id = await insert_job(account_id)

        await job_tracker.claim(job_id)
        await expire_lease(job_id)

        assert await job_tracker.claim(job_id) is True
        assert (await load_job(job_id)).attempts == 2

    @pytest.mark.asyncio
    async def test_attempts_are_capped(self, make_account, monkeypatch):
        monkeypatch.setattr(settings, "job_max_attempts", 2)
        account_id = await make_account()
        job_id = await insert_job(account_id)

        for _ in range(2):
            assert await job_tracker.claim(job_id) is True
            await expire_lease(job_id)

        assert await job_tracker.claim(job_id) is False

    @pytest.mark.asyncio
    async def test_terminal_job_cannot_be_claimed(self, make_account):
        account_id = await make_account()
        job_id = await insert_job(account_id, status=JobStatus.COMPLETED)
        assert await job_tracker.claim(job_id) is False


class TestTerminalTransitions:

    @pytest.mark.asyncio
    async def test_complete_then_fail_is_ignored(self, make_account):
        account_id = await make_account()
        job_id = await insert_job(account_id)

        assert await job_tracker.complete(job_id, "## Summary") is True
        assert await job_tracker.fail(job_id, "late error") is False
        assert await job_tracker.complete(job_id, "other text") is False

        job = await load_job(job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.result == "## Summary"
        assert job.error_message is None
        assert job.completed_at is not None

    @pytest.mark.asyncio
    async def test_fail_records_error_and_keeps_debit(self, make_account):
        account_id = await make_account(balance=10)
        job_id = await insert_job(account_id)

        assert await job_tracker.fail(job_id, "AI service unavailable") is True
        assert await job_tracker.complete(job_id, "too late") is False

        job = await load_job(job_id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "AI service unavailable"
        assert job.result is None
        assert await balance_service.get_balance(account_id) == 10


class TestRecovery:

    @pytest.mark.asyncio
    async def test_live_lease_is_not_recoverable(self, make_account):
        account_id = await make_account()
        fresh = await insert_job(account_id)
        leased = await insert_job(account_id)
        done = await insert_job(account_id, status=JobStatus.COMPLETED)
        await job_tracker.claim(leased)

        recoverable = await job_tracker.find_recoverable()

        assert fresh in recoverable
        assert leased not in recoverable
        assert done not in recoverable

    @pytest.mark.asyncio
    async def test_expired_lease_is_recoverable(self, make_account):
        account_id = await make_account()
        job_id = await insert_job(account_id)
        await job_tracker.claim(job_id)
        await expire_lease(job_id)

        assert await job_tracker.find_recoverable() == [job_id]

    @pytest.mark.asyncio
    async def test_exhausted_job_is_abandoned(self, make_account, monkeypatch):
        monkeypatch.setattr(settings, "job_max_attempts", 1)
        account_id = await make_account()
        job_id = await insert_job(account_id)
        await job_tracker.claim(job_id)
        await expire_lease(job_id)

        assert await job_tracker.find_recoverable() == []

        job = await load_job(job_id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == ABANDONED_MESSAGE


class TestRefund:

    @pytest.mark.asyncio
    async def test_refund_failed_job_once(self, make_account):
        account_id = await make_account(balance=10)
        job_id = await insert_job(account_id, cost=3)
        await job_tracker.fail(job_id, "boom")

        result = await job_tracker.refund_job(job_id)

        assert result.credits_refunded == 3
        assert result.new_balance == 13
        assert (await load_job(job_id)).refunded_at is not None

        async with async_session_factory() as session:
            refunds = (
                await session.execute(select(LedgerEntry).where(LedgerEntry.kind == EntryKind.REFUND))
            ).scalars().all()
        assert len(refunds) == 1
        assert refunds[0].idempotency_key == f"refund:{job_id}"
        assert refunds[0].reference_id == str(job_id)

        with pytest.raises(ConflictError):
            await job_tracker.refund_job(job_id)
        assert await balance_service.get_balance(account_id) == 13

    @pytest.mark.asyncio
    async def test_only_failed_jobs_are_refundable(self, make_account):
        account_id = await make_account()
        pending = await insert_job(account_id)
        completed = await insert_job(account_id, status=JobStatus.COMPLETED)

        with pytest.raises(ConflictError):
            await job_tracker.refund_job(pending)
        with pytest.raises(ConflictError):
            await job_tracker.refund_job(completed)

    @pytest.mark.asyncio
    async def test_unknown_job(self, database):
        with pytest.raises(NotFoundError):
            await job_tracker.refund_job(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_custom_reason_is_recorded(self, make_account):
        account_id = await make_account(balance=5)
        job_id = await insert_job(account_id, cost=1)
        await job_tracker.fail(job_id, "boom")

        await job_tracker.refund_job(job_id, reason="Goodwill credit for outage")

        async with async_session_factory() as session:
            entry = (
                await session.execute(select(LedgerEntry).where(LedgerEntry.kind == EntryKind.REFUND))
            ).scalar_one()
        assert entry.reason == "Goodwill credit for outage"
        await balance_service.audit_account(account_id, strict=True)


class TestLatestJob:

    @pytest.mark.asyncio
    async def test_timestamp_tie_resolves_by_id(self, make_account):
        account_id = await make_account()
        first_id = await insert_job(account_id, status=JobStatus.FAILED)
        highest = uuid.UUID(int=(1 << 128) - 1)
        lowest = uuid.UUID(int=0)
        tick = utcnow()

        async with transaction("test_latest_job") as session:
            transcript_id = (await session.get(BillableJob, first_id)).input_ref
            for job_id in (highest, lowest):
                session.add(
                    BillableJob(
                        id=job_id,
                        account_id=account_id,
                        input_ref=transcript_id,
                        status=JobStatus.FAILED,
                        cost_charged=1,
                    )
                )
            await session.flush()
            await session.execute(
                update(BillableJob).where(BillableJob.input_ref == transcript_id).values(created_at=tick)
            )

        for _ in range(3):
            async with async_session_factory() as session:
                latest = await latest_jobs_for(session, [transcript_id])
            assert latest[transcript_id].id == highest
