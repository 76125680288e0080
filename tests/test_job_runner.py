"""
Summarify Backend — Job Runner Tests
======================================

What:  Background summary execution against the FakeLLM.
How:   Jobs are created through the real services (or inserted directly
       for recovery tests) and drained with job_runner.wait_idle().

What we test:
    ✅ A summary job completes with the AI reply
    ✅ An AI failure fails the job and keeps the debit
    ✅ A transcript with only filler never reaches the AI
    ✅ Content that merely opens with "Okay" or "Yes" is summarised
    ✅ The caller's custom prompt is what the AI receives
    ✅ recover_pending re-dispatches lease-free pending jobs
    ✅ A job still leased is left alone
"""

import asyncio

import pytest

from conftest import insert_job, transcript_payload
from summarify.exceptions import LLMServiceError
from summarify.models.billable_job import JobStatus
from summarify.schemas.transcripts import TranscriptCreate
from summarify.services.balance_service import balance_service
from summarify.services.job_runner import job_runner
from summarify.services.job_tracker import job_tracker
from summarify.services.summary_service import summary_service
from summarify.services.transcript_cleaner import CUSTOM_PROMPT_SUFFIX, EMPTY_MEETING_SUMMARY
from summarify.services.transcript_service import transcript_service


async def store(account_id: str, **overrides):
    payload = TranscriptCreate(**transcript_payload(**overrides))
    return await transcript_service.store_transcript(account_id, payload)


class TestRun:

    @pytest.mark.asyncio
    async def test_job_completes_with_ai_reply(self, make_account, fake_llm):
        account_id = await make_account()
        created = await store(account_id, should_summarize=True)
        await job_runner.wait_idle()

        job = await summary_service.get_job(account_id, created.job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.result == fake_llm.reply
        assert job.attempts == 1
        assert len(fake_llm.calls) == 1
        # Filler never reaches the model
        assert fake_llm.calls[0]["content"] == "Alice: Budget is approved\nBob: Ship on Friday"

    @pytest.mark.asyncio
    async def test_ai_failure_fails_job_and_keeps_debit(self, make_account, fake_llm):
        account_id = await make_account(balance=10)
        fake_llm.error = LLMServiceError("AI service temporarily unavailable")

        created = await store(account_id, duration=30, should_summarize=True)
        await job_runner.wait_idle()

        job = await summary_service.get_job(account_id, created.job_id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "AI service temporarily unavailable"
        assert job.result is None
        assert await balance_service.get_balance(account_id) == 8

    @pytest.mark.asyncio
    async def test_filler_only_transcript_skips_ai(self, make_account, fake_llm):
        account_id = await make_account()
        created = await store(
            account_id,
            should_summarize=True,
            transcript_json={"entries": [{"speaker": "A", "text": "Okay"}, {"speaker": "B", "text": "How are you?"}]},
        )
        await job_runner.wait_idle()

        job = await summary_service.get_job(account_id, created.job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.result == EMPTY_MEETING_SUMMARY
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_content_opening_with_filler_word_reaches_ai(self, make_account, fake_llm):
        account_id = await make_account()
        created = await store(
            account_id,
            should_summarize=True,
            transcript_json={
                "entries": [
                    {"speaker": "Ana", "text": "Okay so the launch moves to March 3rd"},
                    {"speaker": "Bo", "text": "Yes, and marketing owns the press release"},
                ]
            },
        )
        await job_runner.wait_idle()

        job = await summary_service.get_job(account_id, created.job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.result == fake_llm.reply
        assert job.result != EMPTY_MEETING_SUMMARY
        assert fake_llm.calls[0]["content"] == (
            "Ana: Okay so the launch moves to March 3rd\nBo: Yes, and marketing owns the press release"
        )

    @pytest.mark.asyncio
    async def test_custom_prompt_is_sent(self, make_account, fake_llm):
        account_id = await make_account()
        created = await store(account_id)

        await summary_service.request_summary(
            account_id,
            created.transcript_id,
            custom_prompt="List only the decisions.",
        )
        await job_runner.wait_idle()

        prompt = fake_llm.calls[0]["prompt"]
        assert prompt.startswith("List only the decisions.")
        assert prompt.endswith(CUSTOM_PROMPT_SUFFIX)

    @pytest.mark.asyncio
    async def test_job_is_observable_while_running(self, make_account, fake_llm):
        account_id = await make_account()
        fake_llm.gate = asyncio.Event()

        created = await store(account_id, should_summarize=True)
        while not fake_llm.calls:
            await asyncio.sleep(0.01)

        running = await summary_service.get_job(account_id, created.job_id)
        assert running.status == JobStatus.PENDING
        assert job_runner.active_jobs == 1

        fake_llm.gate.set()
        await job_runner.wait_idle()
        assert (await summary_service.get_job(account_id, created.job_id)).status == JobStatus.COMPLETED


class TestRecovery:

    @pytest.mark.asyncio
    async def test_recover_pending_dispatches_orphans(self, make_account, fake_llm):
        account_id = await make_account()
        first = await insert_job(account_id)
        second = await insert_job(account_id)

        assert await job_runner.recover_pending() == 2
        await job_runner.wait_idle()

        for job_id in (first, second):
            job = await summary_service.get_job(account_id, job_id)
            assert job.status == JobStatus.COMPLETED
        assert await job_runner.recover_pending() == 0

    @pytest.mark.asyncio
    async def test_leased_job_is_left_alone(self, make_account, fake_llm):
        account_id = await make_account()
        job_id = await insert_job(account_id)
        # Another worker holds the lease
        assert await job_tracker.claim(job_id) is True

        assert await job_runner.recover_pending() == 0
        assert await job_runner.run(job_id) is None
        assert fake_llm.calls == []
