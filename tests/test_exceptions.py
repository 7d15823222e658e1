"""
Tests for exception classes.

Covers all exception types and their string representations.
"""

from uuid import uuid4

import pytest

from visionai.exceptions import (
    AuthenticationError,
    DuplicatePaymentError,
    EmailAlreadyRegisteredError,
    GatewayError,
    GatewayVerificationFailedError,
    InsufficientCreditsError,
    InvalidPlanError,
    PaymentNotFoundError,
    PaymentProviderError,
    UserInactiveError,
    UserNotFoundError,
    VisionAIError,
    WebhookVerificationError,
    WriteVerificationError,
)


class TestVisionAIError:
    """Tests for base VisionAIError."""

    def test_is_exception(self):
        assert issubclass(VisionAIError, Exception)

    def test_can_be_raised(self):
        with pytest.raises(VisionAIError):
            raise VisionAIError("test error")


class TestPaymentErrors:
    """Tests for the payment error taxonomy."""

    def test_invalid_plan(self):
        exc = InvalidPlanError("platinum")
        assert exc.plan_id == "platinum"
        assert "platinum" in str(exc)

    def test_gateway_error(self):
        exc = GatewayError("card_declined")
        assert exc.message == "card_declined"
        assert "Payment gateway error" in str(exc)

    def test_duplicate_payment_is_gateway_error(self):
        exc = DuplicatePaymentError("pi_123")
        assert exc.gateway_intent_id == "pi_123"
        assert isinstance(exc, GatewayError)
        assert "pi_123" in str(exc)

    def test_payment_not_found(self):
        exc = PaymentNotFoundError("pi_123")
        assert exc.gateway_intent_id == "pi_123"
        assert "pi_123" in str(exc)

    def test_verification_failed(self):
        exc = GatewayVerificationFailedError("pi_123", "intent status is processing")
        assert exc.gateway_intent_id == "pi_123"
        assert exc.reason == "intent status is processing"
        assert "processing" in str(exc)

    def test_provider_error(self):
        exc = PaymentProviderError("retrieve_intent", "timed out after 10.0s")
        assert exc.operation == "retrieve_intent"
        assert exc.message == "timed out after 10.0s"
        assert "retrieve_intent" in str(exc)

    def test_webhook_verification(self):
        exc = WebhookVerificationError("Invalid signature")
        assert exc.message == "Invalid signature"
        assert "Webhook verification error" in str(exc)


class TestAccountErrors:
    """Tests for user and credit errors."""

    def test_insufficient_credits(self):
        exc = InsufficientCreditsError(balance=3, required=5)
        assert exc.balance == 3
        assert exc.required == 5
        assert "Insufficient credits" in str(exc)

    def test_user_not_found(self):
        user_id = uuid4()
        exc = UserNotFoundError(user_id)
        assert exc.user_id == user_id
        assert str(user_id) in str(exc)

    def test_user_inactive(self):
        user_id = uuid4()
        assert UserInactiveError(user_id).user_id == user_id

    def test_email_already_registered(self):
        exc = EmailAlreadyRegisteredError("ada@example.com")
        assert exc.email == "ada@example.com"
        assert "already exists" in str(exc)

    def test_authentication(self):
        exc = AuthenticationError("Token expired")
        assert exc.message == "Token expired"

    def test_write_verification(self):
        assert "Write verification failed" in str(WriteVerificationError("missing row"))


@pytest.mark.parametrize(
    "exc",
    [
        InvalidPlanError("x"),
        GatewayError("x"),
        DuplicatePaymentError("x"),
        PaymentNotFoundError("x"),
        GatewayVerificationFailedError("x", "y"),
        WebhookVerificationError("x"),
        InsufficientCreditsError(0, 1),
        UserNotFoundError(uuid4()),
        UserInactiveError(uuid4()),
        EmailAlreadyRegisteredError("x"),
        AuthenticationError("x"),
        WriteVerificationError("x"),
        PaymentProviderError("x", "y"),
    ],
)
def test_all_errors_share_base(exc: Exception):
    assert isinstance(exc, VisionAIError)
