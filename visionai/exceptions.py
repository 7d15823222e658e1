"""
Exception Classes - Strongly typed exception hierarchy.

"Already processed" payments are a successful result, not an exception.
"""

from uuid import UUID


class VisionAIError(Exception):
    """Base exception for all service errors."""

    pass


class InvalidPlanError(VisionAIError):
    """Raised when a plan id is unknown or cannot be purchased."""

    def __init__(self, plan_id: str) -> None:
        self.plan_id = plan_id
        super().__init__(f"Invalid plan: {plan_id}")


class GatewayError(VisionAIError):
    """Raised when the payment gateway fails while creating an intent."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment gateway error: {message}")


class DuplicatePaymentError(GatewayError):
    """Raised when a payment record already exists for a gateway intent."""

    def __init__(self, gateway_intent_id: str) -> None:
        self.gateway_intent_id = gateway_intent_id
        super().__init__(f"Payment already recorded for intent {gateway_intent_id}")


class PaymentNotFoundError(VisionAIError):
    """Raised when no payment record matches a gateway intent."""

    def __init__(self, gateway_intent_id: str) -> None:
        self.gateway_intent_id = gateway_intent_id
        super().__init__(f"Payment not found for intent {gateway_intent_id}")


class GatewayVerificationFailedError(VisionAIError):
    """Raised when the gateway cannot confirm that an intent succeeded."""

    def __init__(self, gateway_intent_id: str, reason: str) -> None:
        self.gateway_intent_id = gateway_intent_id
        self.reason = reason
        super().__init__(f"Gateway verification failed for {gateway_intent_id}: {reason}")


class WebhookVerificationError(VisionAIError):
    """Raised when webhook signature verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Webhook verification error: {message}")


class InsufficientCreditsError(VisionAIError):
    """Raised when a deduction would make the balance negative."""

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient credits. Balance: {balance}, Required: {required}")


class UserNotFoundError(VisionAIError):
    """Raised when a user doesn't exist."""

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class UserInactiveError(VisionAIError):
    """Raised when a deactivated user attempts a purchase."""

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} is inactive")


class EmailAlreadyRegisteredError(VisionAIError):
    """Raised when registering an email that already has an account."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"User with email {email} already exists")


class AuthenticationError(VisionAIError):
    """Raised when authentication fails (bad credentials, bad token)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class WriteVerificationError(VisionAIError):
    """Raised when database write verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Write verification failed: {message}")


class PaymentProviderError(VisionAIError):
    """Raised by gateway implementations when a provider call fails or times out."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"Payment provider error during {operation}: {message}")
