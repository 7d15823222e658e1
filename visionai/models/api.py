"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class PaymentStatus(str, Enum):
    """Payment record lifecycle states. Only PENDING is non-terminal."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class PlanTier(str, Enum):
    """User plan tiers."""

    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class ReconcileSource(str, Enum):
    """Which confirmation path triggered a reconciliation."""

    WEBHOOK = "webhook"
    FALLBACK = "fallback"


# ============================================================================
# Auth Models
# ============================================================================


class RegisterRequest(BaseModel):
    """POST /api/auth/register request body."""

    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=6, max_length=128)
    name: str = Field(..., min_length=2, max_length=50)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Lower-case and sanity check the address."""
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain or " " in v:
            raise ValueError("Please provide a valid email address")
        return v

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be between 2 and 50 characters")
        return v


class LoginRequest(BaseModel):
    """POST /api/auth/login request body."""

    email: str = Field(..., min_length=1, max_length=254)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class UserResponse(BaseModel):
    """Public view of a user account."""

    id: UUID
    email: str
    name: str
    credits: int
    plan: PlanTier
    created_at: datetime
    last_login_at: datetime | None = None


class AuthResponse(BaseModel):
    """Response for register and login."""

    user: UserResponse
    token: str
    token_type: str = "bearer"


# ============================================================================
# Plan Models
# ============================================================================


class PlanResponse(BaseModel):
    """Plan catalog entry."""

    id: str
    name: str
    price_minor: int
    currency: str
    credits: int | None = Field(None, description="None means unlimited")
    unlimited: bool = False
    description: str


class PlanListResponse(BaseModel):
    """GET /api/payments/plans response."""

    plans: list[PlanResponse]


# ============================================================================
# Payment Models
# ============================================================================


class CreatePaymentIntentRequest(BaseModel):
    """POST /api/payments/create-payment-intent request body."""

    plan_id: str = Field(..., min_length=1, max_length=50)


class CreatePaymentIntentResponse(BaseModel):
    """Client-side confirmation handle for a new purchase."""

    payment_id: UUID
    payment_intent_id: str
    client_secret: str
    publishable_key: str
    plan: PlanResponse


class ConfirmPaymentRequest(BaseModel):
    """POST /api/payments/confirm request body."""

    payment_intent_id: str = Field(..., min_length=1, max_length=255)


class ConfirmPaymentResponse(BaseModel):
    """Outcome of a reconciliation, identical for first and repeated calls."""

    success: bool = True
    message: str
    status: PaymentStatus
    credits_added: int
    new_balance: int
    already_processed: bool


class PaymentResponse(BaseModel):
    """A payment record as shown to its owner."""

    id: UUID
    payment_intent_id: str
    plan_id: str
    plan_name: str
    credits: int | None = Field(None, description="None means unlimited")
    amount_minor: int
    currency: str
    status: PaymentStatus
    created_at: datetime
    processed_at: datetime | None = None


class PaymentHistoryResponse(BaseModel):
    """GET /api/payments/history response."""

    payments: list[PaymentResponse]


class WebhookAckResponse(BaseModel):
    """Acknowledgement returned to the gateway."""

    received: bool = True
    status: str
    event_id: str


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    database: str
    version: str
