"""
Summarify Backend — Settlement Service
========================================

What:  Credit purchases: the product catalogue, purchase-intent creation,
       webhook handling and the reconciler that grants credits exactly once.
How:   Two independent state machines joined only by intent_id:

       purchase:   create_purchase_intent → PaymentIntentRecord(pending)
       settlement: webhook → SettlementEvent(received) → reconcile
                   → SettlementEvent(processed | failed)

       reconcile() moves the intent out of `pending` with a conditional
       UPDATE (the idempotency gate) and appends the purchase entry keyed
       "payment:<intent id>" in the same transaction, under the account lock.
Who:   /api/payments routes and the periodic sweeper.

Webhook contract:
    The handler answers 200 whenever the event was durably recorded (or
    was a duplicate), whatever happened while reconciling it. Only a bad
    signature gets a 400. Reconciliation errors leave the event `failed`
    for sweep_failed_events(); the intent record stays `pending`.

Ordering:
    A notification may arrive before its intent record is committed. Such
    an event is reconciled as not_found and kept `failed`, so the sweep
    applies it once the record exists.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from summarify.database import async_session_factory, transaction
from summarify.exceptions import DatabaseError, NotFoundError, ValidationError
from summarify.models._types import utcnow
from summarify.models.ledger_entry import EntryKind
from summarify.models.payment import (
    EventStatus,
    IntentStatus,
    PaymentIntentRecord,
    Product,
    SettlementEvent,
)
from summarify.schemas.payments import (
    ProductListResponse,
    ProductResponse,
    PurchaseIntentResponse,
    WebhookAck,
)
from summarify.services.ledger_store import ledger_store
from summarify.services.payment_base import PaymentNotification, PaymentOutcome, PaymentProcessor
from summarify.services.stripe_service import stripe_service

logger = logging.getLogger(__name__)

# Sweep gives up on an event after this many reconcile attempts
MAX_EVENT_ATTEMPTS = 10


class ReconcileResult:
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    NOT_FOUND = "not_found"


@dataclass
class SweepReport:
    attempted: int = 0
    processed: int = 0
    failed: int = 0


class SettlementService:
    """
    Attributes:
        processor:  payment processor collaborator (a fake in tests)
    """

    def __init__(self, processor: PaymentProcessor):
        self.processor = processor

    # ── Catalogue ─────────────────────────────────────────────────────────

    async def list_products(self) -> ProductListResponse:
        async with async_session_factory() as session:
            products = (
                await session.execute(
                    select(Product).where(Product.active.is_(True)).order_by(Product.price_cents)
                )
            ).scalars().all()
        return ProductListResponse(products=[ProductResponse.model_validate(p) for p in products])

    # ── Purchase ──────────────────────────────────────────────────────────

    async def create_purchase_intent(self, account_id: str, product_id: str) -> PurchaseIntentResponse:
        """
        Open a payment intent for a credit pack.

        The processor is called before any transaction opens; the pending
        record is inserted afterwards.

        Raises:
            NotFoundError: unknown/inactive product, or unknown account
            PaymentProviderError: the processor call failed (503)
        """
        async with async_session_factory() as session:
            product = await session.get(Product, product_id)
            account = await ledger_store.get_account(session, account_id)
        if product is None or not product.active:
            raise NotFoundError(resource="product", resource_id=product_id)
        if account is None:
            raise NotFoundError(resource="account", resource_id=account_id)

        created = await self.processor.create_intent(
            account_id=account_id,
            amount_cents=product.price_cents,
            currency=product.currency,
            metadata={"product_id": product.id, "credits": str(product.credits)},
            idempotency_key=f"purchase:{account_id}:{product.id}:{utcnow().strftime('%Y%m%d%H%M%S%f')}",
        )

        try:
            async with transaction(f"purchase_intent:{created.intent_id}") as session:
                session.add(
                    PaymentIntentRecord(
                        intent_id=created.intent_id,
                        account_id=account_id,
                        product_id=product.id,
                        amount_cents=product.price_cents,
                        currency=product.currency,
                        credits_granted=product.credits,
                        status=IntentStatus.PENDING,
                    )
                )
        except SQLAlchemyError as e:
            logger.error("Could not record intent %s: %s", created.intent_id, str(e), exc_info=True)
            raise DatabaseError(context={"intent_id": created.intent_id}) from e

        logger.info(
            "Purchase intent %s: account=%s product=%s credits=%d",
            created.intent_id,
            account_id,
            product.id,
            product.credits,
        )
        return PurchaseIntentResponse(
            intent_id=created.intent_id,
            client_handle=created.client_handle,
            amount_cents=product.price_cents,
            currency=product.currency,
            credits=product.credits,
        )

    # ── Reconciler ────────────────────────────────────────────────────────

    async def reconcile(
        self,
        intent_id: str,
        outcome: str,
        account_id: Optional[str] = None,
        amount: Optional[int] = None,
    ) -> str:
        """
        Apply one payment outcome to the ledger at most once.

        Returns:
            ReconcileResult.APPLIED          status moved out of pending now
            ReconcileResult.ALREADY_APPLIED  intent was already terminal
            ReconcileResult.NOT_FOUND        no such intent (never fabricate a grant)
        """
        if outcome not in PaymentOutcome.ALL:
            raise ValidationError(f"Unknown payment outcome '{outcome}'", field="outcome")

        now = utcnow()
        try:
            async with transaction(f"reconcile:{intent_id}") as session:
                intent = await session.get(PaymentIntentRecord, intent_id)
                if intent is None:
                    logger.warning("Settlement for unknown intent %s ignored", intent_id)
                    return ReconcileResult.NOT_FOUND
                if intent.status in IntentStatus.TERMINAL:
                    logger.info("Intent %s already %s; duplicate settlement", intent_id, intent.status)
                    return ReconcileResult.ALREADY_APPLIED

                if account_id and account_id != intent.account_id:
                    logger.warning(
                        "Intent %s: notification names account %s, record has %s; using record",
                        intent_id,
                        account_id,
                        intent.account_id,
                    )
                if amount is not None and amount != intent.amount_cents:
                    logger.warning(
                        "Intent %s: notification amount %d differs from record %d; using record",
                        intent_id,
                        amount,
                        intent.amount_cents,
                    )

                await ledger_store.lock_account(session, intent.account_id)

                new_status = (
                    IntentStatus.SUCCEEDED if outcome == PaymentOutcome.SUCCEEDED else IntentStatus.FAILED
                )
                gate = await session.execute(
                    update(PaymentIntentRecord)
                    .where(
                        PaymentIntentRecord.intent_id == intent_id,
                        PaymentIntentRecord.status == IntentStatus.PENDING,
                    )
                    .values(status=new_status, settled_at=now)
                    .execution_options(synchronize_session=False)
                )
                if gate.rowcount != 1:
                    return ReconcileResult.ALREADY_APPLIED

                if new_status == IntentStatus.SUCCEEDED:
                    entry = await ledger_store.append_entry(
                        session,
                        account_id=intent.account_id,
                        delta=intent.credits_granted,
                        kind=EntryKind.PURCHASE,
                        reason=f"Purchase of {intent.credits_granted} credits",
                        reference_type="payment_intent",
                        reference_id=intent_id,
                        idempotency_key=f"payment:{intent_id}",
                    )
                    await session.execute(
                        update(PaymentIntentRecord)
                        .where(PaymentIntentRecord.intent_id == intent_id)
                        .values(ledger_entry_id=entry.id)
                        .execution_options(synchronize_session=False)
                    )
        except IntegrityError:
            logger.error(
                "Invariant breach: intent %s is pending but ledger entry payment:%s exists",
                intent_id,
                intent_id,
            )
            return ReconcileResult.ALREADY_APPLIED

        logger.info(
            "Settled intent %s as %s for account %s (+%d credits)",
            intent_id,
            new_status,
            intent.account_id,
            intent.credits_granted if new_status == IntentStatus.SUCCEEDED else 0,
        )
        return ReconcileResult.APPLIED

    # ── Webhook ───────────────────────────────────────────────────────────

    async def handle_notification(self, payload: bytes, signature: Optional[str]) -> WebhookAck:
        """
        Verify, record and reconcile one webhook delivery.

        Raises:
            ValidationError: bad signature/payload (the only 400)
            DatabaseError: the event could not be recorded (processor retries)
        """
        notification = self.processor.parse_notification(payload, signature)
        if notification is None:
            return WebhookAck(status="ignored")

        event = await self._record_event(notification)
        if event.status == EventStatus.PROCESSED:
            return WebhookAck(event_id=event.event_id, status="duplicate", result=event.result)

        status, result = await self._process_event(event)
        return WebhookAck(event_id=event.event_id, status=status, result=result)

    async def _record_event(self, notification: PaymentNotification) -> SettlementEvent:
        try:
            async with transaction(f"settlement_event:{notification.event_id}") as session:
                event = SettlementEvent(
                    event_id=notification.event_id,
                    intent_id=notification.intent_id,
                    outcome=notification.outcome,
                    reported_amount=notification.amount,
                    reported_account_id=notification.account_id,
                    payload=notification.payload,
                    status=EventStatus.RECEIVED,
                )
                session.add(event)
            return event
        except IntegrityError:
            logger.info("Settlement event %s redelivered", notification.event_id)
        except SQLAlchemyError as e:
            logger.error("Could not record settlement event %s: %s", notification.event_id, str(e))
            raise DatabaseError(context={"event_id": notification.event_id}) from e

        async with async_session_factory() as session:
            existing = await session.get(SettlementEvent, notification.event_id)
        if existing is None:
            raise DatabaseError(context={"event_id": notification.event_id})
        return existing

    async def _process_event(self, event: SettlementEvent):
        """Reconcile a recorded event and store the outcome on it. Never raises on reconcile errors."""
        error: Optional[str] = None
        result: Optional[str] = None
        try:
            result = await self.reconcile(
                event.intent_id,
                event.outcome,
                account_id=event.reported_account_id,
                amount=event.reported_amount,
            )
        except Exception as e:
            logger.error("Reconciling event %s failed: %s", event.event_id, str(e), exc_info=True)
            error = str(e) or type(e).__name__

        if error is None and result == ReconcileResult.NOT_FOUND:
            error = f"No purchase intent {event.intent_id} recorded yet"
        status = EventStatus.PROCESSED if error is None else EventStatus.FAILED

        try:
            async with transaction(f"settlement_event_mark:{event.event_id}") as session:
                await session.execute(
                    update(SettlementEvent)
                    .where(SettlementEvent.event_id == event.event_id)
                    .values(
                        status=status,
                        result=result,
                        error=error,
                        attempts=SettlementEvent.attempts + 1,
                        processed_at=utcnow() if status == EventStatus.PROCESSED else None,
                    )
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError:
            # The event stays `received`; the sweep picks it up
            logger.error("Could not mark settlement event %s", event.event_id, exc_info=True)

        return status, result

    async def sweep_failed_events(self) -> SweepReport:
        """Offline reconciliation: retry events left received or failed."""
        async with async_session_factory() as session:
            events: List[SettlementEvent] = list(
                (
                    await session.execute(
                        select(SettlementEvent)
                        .where(
                            SettlementEvent.status.in_(EventStatus.RETRYABLE),
                            SettlementEvent.attempts < MAX_EVENT_ATTEMPTS,
                        )
                        .order_by(SettlementEvent.received_at)
                    )
                ).scalars().all()
            )

        report = SweepReport()
        for event in events:
            report.attempted += 1
            status, _ = await self._process_event(event)
            if status == EventStatus.PROCESSED:
                report.processed += 1
            else:
                report.failed += 1

        if report.attempted:
            logger.info(
                "Settlement sweep: %d attempted, %d processed, %d still failing",
                report.attempted,
                report.processed,
                report.failed,
            )
        return report


# ── Singleton Instance ────────────────────────────────────────────────────
settlement_service = SettlementService(stripe_service)
