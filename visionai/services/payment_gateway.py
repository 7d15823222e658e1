"""
Payment Gateway Protocol - Provider-agnostic interface.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class IntentRequest:
    """
    Provider-agnostic payment intent request.

    Metadata travels with the intent so webhook payloads can be traced back
    to the purchase.
    """

    amount_minor: int
    currency: str
    description: str
    customer_email: str | None
    metadata_user_id: str
    metadata_plan_id: str
    metadata_credits: str
    idempotency_key: str


@dataclass(frozen=True)
class IntentResult:
    """Provider-agnostic view of a payment intent."""

    intent_id: str
    client_secret: str
    status: str
    amount_minor: int
    currency: str

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass(frozen=True)
class GatewayEvent:
    """
    Provider-agnostic webhook event.

    intent_id is the payment intent the event concerns, also for events
    whose object is a charge.
    """

    event_id: str
    event_type: str
    intent_id: str | None
    status: str | None
    amount_minor: int | None
    amount_refunded_minor: int | None
    currency: str | None


class PaymentGateway(Protocol):
    """
    Payment gateway protocol.

    StripeGateway implements it; tests substitute mocks.
    """

    async def create_intent(self, request: IntentRequest) -> IntentResult:
        """
        Create a payment intent.

        Raises:
            PaymentProviderError: If the gateway call fails or times out
        """
        ...

    async def retrieve_intent(self, intent_id: str) -> IntentResult:
        """
        Fetch the current state of a payment intent.

        Raises:
            PaymentProviderError: If the gateway call fails or times out
        """
        ...

    async def verify_webhook(self, payload: bytes, signature: str) -> GatewayEvent:
        """
        Verify and parse a webhook notification.

        Raises:
            WebhookVerificationError: If signature verification fails
        """
        ...

