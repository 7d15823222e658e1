"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class User(Base):
    """
    ORM model for users table.

    Holds the credit balance and plan tier. credits is only ever changed
    through single-statement UPDATEs (see CreditLedger).
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    credits: Mapped[int] = mapped_column(BigInteger, nullable=False, default=20)
    plan: Mapped[str] = mapped_column(String(20), nullable=False, default="free")

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_user_credits_non_negative"),
        CheckConstraint("plan IN ('free', 'pro', 'enterprise')", name="ck_user_plan"),
        Index("idx_users_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, credits={self.credits})>"


class Payment(Base):
    """
    ORM model for payments table.

    One row per payment intent. Moves out of 'pending' exactly once.
    """

    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )

    # Stripe PaymentIntent id
    gateway_intent_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    # Snapshot of the plan's grant at creation time; -1 means unlimited
    credits_to_grant: Mapped[int] = mapped_column(BigInteger, nullable=False)
    plan_id: Mapped[str] = mapped_column(String(50), nullable=False)
    plan_name: Mapped[str] = mapped_column(String(100), nullable=False)

    webhook_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Refund bookkeeping
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refund_amount_minor: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("amount_minor >= 0", name="ck_payment_amount_non_negative"),
        CheckConstraint("credits_to_grant >= -1", name="ck_payment_credits_valid"),
        CheckConstraint(
            "status IN ('pending', 'succeeded', 'failed', 'canceled', 'refunded')",
            name="ck_payment_status",
        ),
        CheckConstraint(
            "refund_amount_minor IS NULL OR refund_amount_minor >= 0",
            name="ck_payment_refund_non_negative",
        ),
        Index("idx_payments_user_created", "user_id", "created_at"),
        Index("idx_payments_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, intent={self.gateway_intent_id}, "
            f"status={self.status}, credits={self.credits_to_grant})>"
        )
