"""
Summarify Backend — Stripe Payment Processor
==============================================

What:  PaymentProcessor implementation on Stripe PaymentIntents and webhooks.
How:   The synchronous Stripe SDK runs in a worker thread
       (asyncio.to_thread) so the event loop never blocks on it. Webhook
       signatures are verified with stripe.Webhook.construct_event.
Who:   SettlementService.

Event mapping:
    payment_intent.succeeded       → succeeded
    payment_intent.payment_failed  → failed
    payment_intent.canceled        → failed
    anything else                  → ignored (acknowledged, not recorded)

The account id travels in the intent's metadata["account_id"], set when the
intent is created.
"""

import asyncio
import json
import logging
from typing import Dict, Optional

import stripe

from summarify.config import settings
from summarify.exceptions import PaymentProviderError, ValidationError
from summarify.services.payment_base import (
    CreatedIntent,
    PaymentNotification,
    PaymentOutcome,
    PaymentProcessor,
)

logger = logging.getLogger(__name__)

EVENT_OUTCOMES = {
    "payment_intent.succeeded": PaymentOutcome.SUCCEEDED,
    "payment_intent.payment_failed": PaymentOutcome.FAILED,
    "payment_intent.canceled": PaymentOutcome.FAILED,
}


class StripeService(PaymentProcessor):

    def __init__(self):
        if settings.stripe_secret_key:
            stripe.api_key = settings.stripe_secret_key

    async def create_intent(
        self,
        account_id: str,
        amount_cents: int,
        currency: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> CreatedIntent:
        if not settings.stripe_secret_key:
            raise PaymentProviderError("Payments are not configured")

        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                amount=amount_cents,
                currency=currency,
                metadata={**metadata, "account_id": account_id},
                automatic_payment_methods={"enabled": True},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.error("Stripe PaymentIntent.create failed for %s: %s", account_id, str(e))
            raise PaymentProviderError(
                message="Could not start the payment. Please try again.",
                context={"error_type": type(e).__name__},
            ) from e

        logger.info("Stripe intent %s created for %s (%d %s)", intent.id, account_id, amount_cents, currency)
        return CreatedIntent(intent_id=intent.id, client_handle=intent.client_secret)

    def parse_notification(self, payload: bytes, signature: Optional[str]) -> Optional[PaymentNotification]:
        if not settings.stripe_webhook_secret:
            raise ValidationError("Webhook secret is not configured", field="stripe-signature")
        if not signature:
            raise ValidationError("Missing Stripe-Signature header", field="stripe-signature")

        try:
            stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=settings.stripe_webhook_secret,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("Rejected webhook with invalid signature: %s", str(e))
            raise ValidationError("Invalid webhook signature", field="stripe-signature") from e
        except ValueError as e:
            raise ValidationError("Malformed webhook payload") from e

        # Signature verified; read the body as plain JSON
        event = json.loads(payload)
        outcome = EVENT_OUTCOMES.get(event.get("type", ""))
        if outcome is None:
            logger.debug("Ignoring Stripe event type %s", event.get("type"))
            return None

        intent = (event.get("data") or {}).get("object") or {}
        amount = intent.get("amount_received") or intent.get("amount")
        return PaymentNotification(
            event_id=event["id"],
            intent_id=intent["id"],
            outcome=outcome,
            amount=amount,
            account_id=(intent.get("metadata") or {}).get("account_id"),
            payload=event,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
stripe_service = StripeService()
