"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from visionai.models.api import PaymentStatus, PlanTier, ReconcileSource

# Credit grant sentinel for plans without a credit cap.
UNLIMITED_CREDITS = -1


@dataclass(frozen=True)
class Plan:
    """Immutable plan catalog entry."""

    id: str
    name: str
    price_minor: int
    credits: int
    description: str

    def __post_init__(self) -> None:
        """Validate plan constraints."""
        if self.id not in {tier.value for tier in PlanTier}:
            raise ValueError(f"Plan id must be a plan tier: {self.id!r}")
        if self.price_minor < 0:
            raise ValueError(f"Plan price cannot be negative: {self.price_minor}")
        if self.credits < UNLIMITED_CREDITS:
            raise ValueError(f"Invalid credit grant: {self.credits}")

    @property
    def unlimited(self) -> bool:
        return self.credits == UNLIMITED_CREDITS

    @property
    def purchasable(self) -> bool:
        return self.price_minor > 0


@dataclass(frozen=True)
class UserData:
    """Immutable user snapshot."""

    user_id: UUID
    email: str
    name: str
    credits: int
    plan: PlanTier
    is_active: bool
    created_at: datetime
    last_login_at: datetime | None


@dataclass(frozen=True)
class PendingPayment:
    """Result of creating a pending payment."""

    payment_id: UUID
    gateway_intent_id: str
    client_secret: str
    plan: Plan
    amount_minor: int
    currency: str


@dataclass(frozen=True)
class ReconcileResult:
    """
    Outcome of a reconciliation.

    already_processed is True when another call (or an earlier one) had
    already moved the payment to a terminal state.
    """

    payment_id: UUID
    status: PaymentStatus
    credits_added: int
    new_balance: int
    already_processed: bool
    source: ReconcileSource


@dataclass(frozen=True)
class PaymentData:
    """Immutable payment record snapshot."""

    payment_id: UUID
    user_id: UUID
    gateway_intent_id: str
    amount_minor: int
    currency: str
    status: PaymentStatus
    credits_to_grant: int
    plan_id: str
    plan_name: str
    webhook_confirmed: bool
    created_at: datetime
    processed_at: datetime | None
    refunded_at: datetime | None
    refund_amount_minor: int | None

    @property
    def unlimited(self) -> bool:
        return self.credits_to_grant == UNLIMITED_CREDITS


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int
