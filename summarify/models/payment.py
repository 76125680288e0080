"""
Summarify Backend — Purchase SQLAlchemy Models
================================================

What:  Credit packs for sale, outstanding purchases and the inbound
       settlement notifications.

Tables:
    products          credit packs (price in cents, credits granted)
    payment_intents   one row per purchase attempt, keyed by the processor's
                      intent id; pending → succeeded | failed, exactly once
    settlement_events every inbound processor notification, keyed by the
                      processor's event id; the durable record that lets the
                      webhook acknowledge delivery before processing succeeds

Purchase creation and settlement are two independent state machines joined
only by intent_id. No ordering between them is assumed: a notification for
an intent not recorded yet is reconciled as not_found and retried by the
settlement sweep; it never grants credits on its own.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from summarify.database import Base
from summarify.models._types import utcnow


class IntentStatus:
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    TERMINAL = frozenset({SUCCEEDED, FAILED})


class EventStatus:
    RECEIVED = "received"
    PROCESSED = "processed"
    FAILED = "failed"

    RETRYABLE = frozenset({RECEIVED, FAILED})


class Product(Base):
    """A purchasable credit pack."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    def __repr__(self) -> str:
        return f"<Product(id='{self.id}', credits={self.credits})>"


class PaymentIntentRecord(Base):
    """
    An outstanding external purchase.

    The intent id is the idempotency key of the grant: the status moves out
    of `pending` through a conditional UPDATE exactly once, and the grant's
    ledger entry carries idempotency_key "payment:<intent_id>".
    """

    __tablename__ = "payment_intents"

    intent_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Payment processor's intent identifier",
    )

    account_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    product_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        ForeignKey("products.id"),
        nullable=True,
    )

    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    credits_granted: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Credits added to the account when the intent succeeds",
    )

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=IntentStatus.PENDING,
        server_default=text("'pending'"),
    )

    ledger_entry_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    settled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_payment_intents_account", "account_id"),
    )

    def __repr__(self) -> str:
        return f"<PaymentIntentRecord(intent_id='{self.intent_id}', status='{self.status}')>"


class SettlementEvent(Base):
    """An inbound payment notification, recorded before it is processed."""

    __tablename__ = "settlement_events"

    event_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    intent_id: Mapped[str] = mapped_column(String(255), nullable=False)

    outcome: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="succeeded or failed, as reported by the processor",
    )

    # Values as reported by the processor; the intent record stays authoritative
    reported_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reported_account_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    payload: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=EventStatus.RECEIVED,
        server_default=text("'received'"),
        comment="received, processed, failed",
    )

    result: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
        comment="applied, already_applied or not_found once processed",
    )

    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_settlement_events_status", "status"),
        Index("idx_settlement_events_intent", "intent_id"),
    )

    def __repr__(self) -> str:
        return f"<SettlementEvent(event_id='{self.event_id}', status='{self.status}')>"
