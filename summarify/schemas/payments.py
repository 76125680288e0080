"""
Summarify Backend — Purchase Schemas
======================================
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class ProductResponse(BaseModel):
    id: str
    name: str
    price_cents: int
    currency: str
    credits: int

    model_config = {"from_attributes": True}


class ProductListResponse(BaseModel):
    products: List[ProductResponse]


class PurchaseIntentRequest(BaseModel):
    """Body of POST /api/payments/intents."""
    product_id: str = Field(min_length=1, max_length=64)


class PurchaseIntentResponse(BaseModel):
    """
    Returned by POST /api/payments/intents.

    client_handle is whatever the payment processor's client SDK needs to
    confirm the payment (a Stripe client secret); it is not ledger state.
    """
    intent_id: str
    client_handle: str
    amount_cents: int
    currency: str
    credits: int


class WebhookAck(BaseModel):
    """Acknowledgement returned to the payment processor (always HTTP 200)."""
    received: bool = True
    event_id: Optional[str] = None
    status: str = Field(description="processed, failed, duplicate or ignored")
    result: Optional[str] = Field(default=None, description="applied, already_applied or not_found")
