"""
Summarify Backend — Abstract Payment Processor Interface
==========================================================

What:  Narrow contract for the external payment processor: open a payment
       intent, and turn a signed webhook delivery into a notification.
How:   StripeService implements it; tests use a fake. SettlementService
       depends only on this interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class PaymentOutcome:
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    ALL = frozenset({SUCCEEDED, FAILED})


@dataclass(frozen=True)
class CreatedIntent:
    intent_id: str
    client_handle: str


@dataclass(frozen=True)
class PaymentNotification:
    """
    One inbound processor event about a payment intent.

    Delivery is at-least-once and unordered across intents. `amount` and
    `account_id` are as reported by the processor; the stored intent
    record stays authoritative.
    """
    event_id: str
    intent_id: str
    outcome: str
    amount: Optional[int] = None
    account_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


class PaymentProcessor(ABC):

    @abstractmethod
    async def create_intent(
        self,
        account_id: str,
        amount_cents: int,
        currency: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> CreatedIntent:
        """
        Open a payment intent with the processor.

        Called before any database transaction is opened.

        Raises:
            PaymentProviderError: the processor rejected or could not serve the call
        """
        ...

    @abstractmethod
    def parse_notification(self, payload: bytes, signature: Optional[str]) -> Optional[PaymentNotification]:
        """
        Verify and decode a webhook delivery.

        Returns None for event types that carry no payment outcome.

        Raises:
            ValidationError: bad signature or malformed payload
        """
        ...
