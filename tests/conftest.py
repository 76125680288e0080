"""
Summarify Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   The environment points the app at a throwaway SQLite file (through
       aiosqlite) BEFORE any summarify import, so the module-level engine
       and settings pick it up. Each ledger test gets a freshly created
       schema; Gemini and Stripe are replaced with in-process fakes.

Fixture Hierarchy:
    Function-scoped:
    ├── database: create_all before the test, wait for jobs + drop_all after
    ├── fake_llm: FakeLLM installed as the job runner's AI collaborator
    ├── fake_processor: FakePaymentProcessor installed on the settlement service
    ├── make_account: factory creating an account with a chosen balance
    ├── products: seeded credit-pack catalogue
    └── test_client: HTTPX AsyncClient bound to the FastAPI app (no lifespan)
"""

import asyncio
import json
import os
import tempfile
import uuid
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Override settings for testing BEFORE any app imports
_test_dir = tempfile.mkdtemp(prefix="summarify_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_test_dir}/test.db"
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_not_real"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["STARTING_CREDITS"] = "50"
os.environ["JOB_SWEEP_INTERVAL"] = "0"
os.environ["LOG_LEVEL"] = "WARNING"

from summarify.database import Base, engine, transaction  # noqa: E402
import summarify.models  # noqa: E402,F401
from summarify.exceptions import ValidationError  # noqa: E402
from summarify.models.billable_job import BillableJob  # noqa: E402
from summarify.models.payment import Product  # noqa: E402
from summarify.models.transcript import Transcript  # noqa: E402
from summarify.services.account_service import account_service  # noqa: E402
from summarify.services.job_runner import job_runner  # noqa: E402
from summarify.services.llm_base import LLMService  # noqa: E402
from summarify.services.payment_base import (  # noqa: E402
    CreatedIntent,
    PaymentNotification,
    PaymentProcessor,
)
from summarify.services.settlement_service import settlement_service  # noqa: E402
from summarify.services.spend_coordinator import spend_coordinator  # noqa: E402

ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}
VALID_SIGNATURE = "t=1,v1=valid"


# ══════════════════════════════════════════════════════════════════════════
# Fakes for external collaborators
# ══════════════════════════════════════════════════════════════════════════

class FakeLLM(LLMService):
    """
    In-process AI adapter.

    Returns `reply` for every call, or raises `error` when set. When `gate`
    is set, calls wait on it so a test can observe a job while it runs.
    """

    def __init__(self, reply: str = "## Meeting Overview\nBudget approved."):
        self.reply = reply
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[Dict[str, str]] = []

    async def generate(self, content: str, prompt: str) -> str:
        self.calls.append({"content": content, "prompt": prompt})
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.reply

    async def health_check(self) -> bool:
        return self.error is None


class FakePaymentProcessor(PaymentProcessor):
    """
    In-process payment processor.

    Intents are numbered pi_test_1, pi_test_2, ...; a webhook delivery is
    accepted when its signature equals VALID_SIGNATURE and its body is the
    JSON produced by `event()`.
    """

    def __init__(self):
        self.created: List[Dict[str, Any]] = []
        self.fail_next: Optional[Exception] = None

    async def create_intent(self, account_id, amount_cents, currency, metadata, idempotency_key):
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error
        n = len(self.created) + 1
        self.created.append(
            {"account_id": account_id, "amount_cents": amount_cents, "currency": currency, "metadata": metadata}
        )
        return CreatedIntent(intent_id=f"pi_test_{n}", client_handle=f"pi_test_{n}_secret")

    def parse_notification(self, payload: bytes, signature: Optional[str]) -> Optional[PaymentNotification]:
        if signature != VALID_SIGNATURE:
            raise ValidationError("Invalid webhook signature", field="stripe-signature")
        event = json.loads(payload)
        if event["type"] not in ("succeeded", "failed"):
            return None
        return PaymentNotification(
            event_id=event["id"],
            intent_id=event["intent_id"],
            outcome=event["type"],
            amount=event.get("amount"),
            account_id=event.get("account_id"),
            payload=event,
        )

    @staticmethod
    def event(event_id: str, intent_id: str, outcome: str = "succeeded", **extra) -> bytes:
        return json.dumps({"id": event_id, "intent_id": intent_id, "type": outcome, **extra}).encode()


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def database():
    """Fresh schema per test; background jobs are drained before teardown."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await job_runner.wait_idle()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def fake_llm(monkeypatch):
    llm = FakeLLM()
    monkeypatch.setattr(job_runner, "llm", llm)
    return llm


@pytest.fixture
def fake_processor(monkeypatch):
    processor = FakePaymentProcessor()
    monkeypatch.setattr(settlement_service, "processor", processor)
    return processor


@pytest.fixture
def make_account(database):
    """
    Factory: `await make_account("user-1", balance=3)`.

    The balance is reached through a real admin adjustment so the ledger
    still sums to it.
    """

    async def _make(account_id: str = "user-1", balance: Optional[int] = None) -> str:
        profile = await account_service.ensure_account(account_id, email=f"{account_id}@example.com")
        if balance is not None and balance != profile.balance:
            await spend_coordinator.adjust(account_id, balance - profile.balance, "test setup")
        return account_id

    return _make


@pytest_asyncio.fixture
async def products(database):
    async with transaction("seed_products") as session:
        session.add_all(
            [
                Product(id="credits_100", name="100 credits", price_cents=500, currency="usd", credits=100),
                Product(id="credits_500", name="500 credits", price_cents=2000, currency="usd", credits=500),
                Product(id="retired", name="Old pack", price_cents=100, currency="usd", credits=10, active=False),
            ]
        )
    return ["credits_100", "credits_500"]


@pytest_asyncio.fixture
async def test_client(database, fake_llm, fake_processor):
    """
    HTTPX AsyncClient talking to the FastAPI app through ASGITransport.

    The lifespan is not run, so no sweeper is started.
    """
    from summarify.main import app
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def transcript_payload(duration: Optional[int] = 45, should_summarize: bool = False, **overrides) -> Dict[str, Any]:
    payload = {
        "title": "Quarterly planning",
        "transcript_text": "Alice: Budget is approved\nBob: Ship on Friday",
        "transcript_json": {
            "entries": [
                {"speaker": "Alice", "text": "Okay"},
                {"speaker": "Alice", "text": "Budget is approved"},
                {"speaker": "Bob", "text": "Ship on Friday"},
            ]
        },
        "meeting_duration_minutes": duration,
        "should_summarize": should_summarize,
    }
    payload.update(overrides)
    return payload


async def insert_job(account_id: str, cost: int = 1, status: str = "pending", transcript_json=None) -> uuid.UUID:
    """Insert a transcript and a billable job for it directly, without charging or dispatching."""
    transcript_id = uuid.uuid4()
    job_id = uuid.uuid4()
    async with transaction("test_insert_job") as session:
        session.add(
            Transcript(
                id=transcript_id,
                account_id=account_id,
                title="Standup",
                transcript_text="Alice: done",
                transcript_json=transcript_json or {"entries": [{"speaker": "Alice", "text": "Shipped the release"}]},
            )
        )
        await session.flush()
        session.add(
            BillableJob(
                id=job_id,
                account_id=account_id,
                input_ref=transcript_id,
                title="Standup",
                status=status,
                cost_charged=cost,
            )
        )
    return job_id
