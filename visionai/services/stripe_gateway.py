"""
Stripe Payment Gateway Implementation.

The Stripe SDK is synchronous; calls run in a worker thread under a bounded
timeout so a slow gateway never holds a request open indefinitely.
"""

import asyncio
import time
from collections.abc import Callable
from typing import Any

import stripe
from structlog import get_logger

from visionai.exceptions import PaymentProviderError, WebhookVerificationError
from visionai.observability.metrics import metrics
from visionai.services.payment_gateway import GatewayEvent, IntentRequest, IntentResult

logger = get_logger(__name__)


def _intent_to_result(payment_intent: Any) -> IntentResult:
    return IntentResult(
        intent_id=payment_intent.id,
        client_secret=payment_intent.client_secret or "",
        status=payment_intent.status,
        amount_minor=payment_intent.amount,
        currency=payment_intent.currency.upper(),
    )


class StripeGateway:
    """
    Stripe payment gateway implementation.

    Implements the PaymentGateway protocol for Stripe PaymentIntents.
    """

    def __init__(self, api_key: str, webhook_secret: str, timeout_seconds: float = 10.0) -> None:
        """
        Initialize Stripe gateway.

        Args:
            api_key: Stripe secret API key
            webhook_secret: Stripe webhook signing secret
            timeout_seconds: Upper bound for each outbound Stripe call
        """
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.timeout_seconds = timeout_seconds
        stripe.api_key = api_key

    async def _call(self, operation: str, func: Callable[..., Any], **kwargs: Any) -> Any:
        """Run a blocking Stripe call with a timeout, translating failures."""
        start = time.monotonic()
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, **kwargs), timeout=self.timeout_seconds
            )
        except TimeoutError as exc:
            logger.error(
                "stripe_call_timeout", operation=operation, timeout_seconds=self.timeout_seconds
            )
            raise PaymentProviderError(
                operation, f"timed out after {self.timeout_seconds}s"
            ) from exc
        except stripe.StripeError as exc:
            logger.error(
                "stripe_call_failed",
                operation=operation,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise PaymentProviderError(operation, str(exc)) from exc
        finally:
            metrics.record_gateway_call(operation, time.monotonic() - start)

    async def create_intent(self, request: IntentRequest) -> IntentResult:
        """
        Create a Stripe PaymentIntent.

        Raises:
            PaymentProviderError: If the Stripe call fails or times out
        """
        logger.info(
            "creating_stripe_payment_intent",
            amount_minor=request.amount_minor,
            currency=request.currency,
            plan_id=request.metadata_plan_id,
        )

        params: dict[str, Any] = {
            "amount": request.amount_minor,
            "currency": request.currency.lower(),
            "description": request.description,
            "metadata": {
                "user_id": request.metadata_user_id,
                "plan_id": request.metadata_plan_id,
                "credits": request.metadata_credits,
            },
            "automatic_payment_methods": {"enabled": True},
            "idempotency_key": request.idempotency_key,
        }
        if request.customer_email:
            params["receipt_email"] = request.customer_email

        payment_intent = await self._call("create_intent", stripe.PaymentIntent.create, **params)

        logger.info(
            "stripe_payment_intent_created",
            payment_intent_id=payment_intent.id,
            status=payment_intent.status,
        )
        return _intent_to_result(payment_intent)

    async def retrieve_intent(self, intent_id: str) -> IntentResult:
        """
        Get the current state of a Stripe PaymentIntent.

        Raises:
            PaymentProviderError: If the Stripe call fails or times out
        """
        payment_intent = await self._call(
            "retrieve_intent", stripe.PaymentIntent.retrieve, id=intent_id
        )

        logger.info(
            "stripe_payment_intent_retrieved",
            payment_intent_id=intent_id,
            status=payment_intent.status,
        )
        return _intent_to_result(payment_intent)

    async def verify_webhook(self, payload: bytes, signature: str) -> GatewayEvent:
        """
        Verify and parse a Stripe webhook event.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header value

        Raises:
            WebhookVerificationError: If the signature or payload is invalid
        """
        if not signature:
            raise WebhookVerificationError("Missing Stripe signature")

        try:
            event = stripe.Webhook.construct_event(  # type: ignore[no-untyped-call]
                payload, signature, self.webhook_secret
            )
        except stripe.SignatureVerificationError as exc:
            logger.error("stripe_webhook_verification_failed", error=str(exc))
            raise WebhookVerificationError("Invalid Stripe webhook signature") from exc
        except ValueError as exc:
            logger.error("stripe_webhook_parsing_failed", error=str(exc))
            raise WebhookVerificationError(f"Malformed Stripe webhook payload: {exc}") from exc

        obj = event.data.object
        if obj.get("object") == "charge":
            intent_id = obj.get("payment_intent")
        else:
            intent_id = obj.get("id")
        currency = obj.get("currency")

        logger.info(
            "stripe_webhook_verified",
            event_id=event.id,
            event_type=event.type,
            payment_intent_id=intent_id,
        )

        return GatewayEvent(
            event_id=event.id,
            event_type=event.type,
            intent_id=intent_id,
            status=obj.get("status"),
            amount_minor=obj.get("amount"),
            amount_refunded_minor=obj.get("amount_refunded"),
            currency=currency.upper() if currency else None,
        )
