"""
Summarify Backend — Payment Routes
====================================

What:  Credit-pack catalogue, purchase intents and the processor webhook.
How:   The webhook reads the raw body (the signature covers the exact
       bytes) and hands it to SettlementService.handle_notification.

Webhook responses:
    400  signature invalid or payload malformed (the processor stops retrying)
    200  event recorded, duplicate, or ignored; reconcile errors included
    500  the event could not be recorded at all (the processor retries)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from summarify.routes.deps import get_account_id
from summarify.schemas.common import ErrorResponse
from summarify.schemas.payments import (
    ProductListResponse,
    PurchaseIntentRequest,
    PurchaseIntentResponse,
    WebhookAck,
)
from summarify.services.settlement_service import settlement_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["Payments"])


@router.get(
    "/products",
    response_model=ProductListResponse,
    summary="Active credit packs",
)
async def list_products() -> ProductListResponse:
    return await settlement_service.list_products()


@router.post(
    "/intents",
    response_model=PurchaseIntentResponse,
    responses={
        401: {"description": "Missing X-Account-ID", "model": ErrorResponse},
        404: {"description": "Unknown product or account", "model": ErrorResponse},
        503: {"description": "Payment provider unavailable", "model": ErrorResponse},
    },
    summary="Start buying a credit pack",
)
async def create_intent(
    body: PurchaseIntentRequest,
    account_id: str = Depends(get_account_id),
) -> PurchaseIntentResponse:
    return await settlement_service.create_purchase_intent(account_id, body.product_id)


@router.post(
    "/webhook",
    response_model=WebhookAck,
    responses={
        400: {"description": "Invalid signature or payload", "model": ErrorResponse},
    },
    summary="Payment processor webhook",
    include_in_schema=False,
)
async def webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
) -> WebhookAck:
    payload = await request.body()
    return await settlement_service.handle_notification(payload, stripe_signature)
