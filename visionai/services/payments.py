"""
Payment Reconciler - credit purchases with exactly-once crediting.

A purchase can be confirmed by two independent paths that may race:
1. The Stripe webhook (authenticated by its signature)
2. The client's fallback confirmation (re-verified with Stripe)

Both call reconcile(). The pending -> succeeded transition is a conditional
UPDATE, so exactly one caller wins and applies the credit grant; every other
caller observes the terminal state and returns the recorded outcome.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from uuid import UUID

from opentelemetry import trace
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from visionai.config import settings
from visionai.db.models import Payment, User
from visionai.exceptions import (
    DuplicatePaymentError,
    GatewayError,
    GatewayVerificationFailedError,
    PaymentNotFoundError,
    PaymentProviderError,
    UserInactiveError,
    UserNotFoundError,
    WriteVerificationError,
)
from visionai.models.api import PaymentStatus, ReconcileSource
from visionai.models.domain import PaymentData, PendingPayment, ReconcileResult
from visionai.observability.metrics import metrics
from visionai.services.credits import CreditLedger
from visionai.services.payment_gateway import IntentRequest, PaymentGateway
from visionai.services.plans import PlanCatalog, plan_catalog

logger = get_logger(__name__)
tracer = trace.get_tracer(__name__)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class IntentLocks:
    """
    Per-intent asyncio locks, released and forgotten when the last holder exits.

    Serialises reconcile() calls for one intent inside a single process. The
    conditional UPDATE is what protects multi-process deployments.
    """

    def __init__(self) -> None:
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock, holders = self._locks.get(key, (asyncio.Lock(), 0))
        self._locks[key] = (lock, holders + 1)
        try:
            async with lock:
                yield
        finally:
            lock, holders = self._locks[key]
            if holders <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, holders - 1)

    def __len__(self) -> int:
        return len(self._locks)


# Shared by every reconciler in this process
intent_locks = IntentLocks()


class PaymentReconciler:
    """
    Creates pending payments and reconciles them exactly once.

    Usage:
        reconciler = PaymentReconciler(db, gateway)
        pending = await reconciler.create_pending_payment(user_id, "pro")
        result = await reconciler.reconcile(intent_id, ReconcileSource.WEBHOOK)
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: PaymentGateway,
        catalog: PlanCatalog = plan_catalog,
        locks: IntentLocks = intent_locks,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.catalog = catalog
        self.locks = locks
        self.ledger = CreditLedger(session)

    async def create_pending_payment(self, user_id: UUID, plan_id: str) -> PendingPayment:
        """
        Create a gateway intent and its pending payment record.

        The record is only written once the gateway has issued the intent, so
        a failed or timed-out gateway call leaves nothing behind.

        Raises:
            InvalidPlanError: Unknown or free plan
            UserNotFoundError: User doesn't exist
            UserInactiveError: User is deactivated
            GatewayError: Intent creation failed upstream
            DuplicatePaymentError: A record already exists for the returned intent
        """
        plan = self.catalog.get_purchasable(plan_id)

        user = await self._find_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        if not user.is_active:
            raise UserInactiveError(user_id)

        intent_request = IntentRequest(
            amount_minor=plan.price_minor,
            currency=settings.currency,
            description=f"VisionAI {plan.name} plan",
            customer_email=user.email,
            metadata_user_id=str(user_id),
            metadata_plan_id=plan.id,
            metadata_credits="unlimited" if plan.unlimited else str(plan.credits),
            idempotency_key=f"intent-{user_id}-{plan.id}-{int(_utc_now().timestamp())}",
        )

        try:
            intent = await self.gateway.create_intent(intent_request)
        except PaymentProviderError as exc:
            metrics.record_payment_intent(plan.id, success=False)
            logger.error(
                "payment_intent_creation_failed",
                user_id=str(user_id),
                plan_id=plan.id,
                error=exc.message,
            )
            raise GatewayError(exc.message) from exc

        payment = Payment(
            user_id=user_id,
            gateway_intent_id=intent.intent_id,
            amount_minor=plan.price_minor,
            currency=settings.currency,
            status=PaymentStatus.PENDING.value,
            credits_to_grant=plan.credits,
            plan_id=plan.id,
            plan_name=plan.name,
            webhook_confirmed=False,
        )
        self.session.add(payment)

        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.session.rollback()
            logger.error(
                "payment_record_duplicate",
                gateway_intent_id=intent.intent_id,
                user_id=str(user_id),
            )
            raise DuplicatePaymentError(intent.intent_id) from exc

        verified = await self.session.get(Payment, payment.id)
        if verified is None:
            raise WriteVerificationError(f"Payment {payment.id} not found after insert")

        await self.session.commit()
        metrics.record_payment_intent(plan.id, success=True)

        logger.info(
            "payment_intent_created",
            payment_id=str(payment.id),
            gateway_intent_id=intent.intent_id,
            plan_id=plan.id,
            amount_minor=plan.price_minor,
            user_id=str(user_id),
        )

        return PendingPayment(
            payment_id=payment.id,
            gateway_intent_id=intent.intent_id,
            client_secret=intent.client_secret,
            plan=plan,
            amount_minor=plan.price_minor,
            currency=settings.currency,
        )

    async def reconcile(
        self,
        gateway_intent_id: str,
        source: ReconcileSource,
        user_id: UUID | None = None,
    ) -> ReconcileResult:
        """
        Move a pending payment to succeeded and grant its credits, once.

        Safe to call any number of times from either path, concurrently.
        The fallback path must re-verify with the gateway first; user_id,
        when given, must own the payment.

        Raises:
            PaymentNotFoundError: No record for the intent (or not the caller's)
            GatewayVerificationFailedError: Fallback could not confirm success
        """
        with tracer.start_as_current_span("payment.reconcile") as span:
            span.set_attributes({"gateway_intent_id": gateway_intent_id, "source": source.value})
            async with self.locks.hold(gateway_intent_id):
                result = await self._reconcile(gateway_intent_id, source, user_id)
            span.set_attributes(
                {
                    "already_processed": result.already_processed,
                    "credits_added": result.credits_added,
                }
            )
            return result

    async def _reconcile(
        self,
        gateway_intent_id: str,
        source: ReconcileSource,
        user_id: UUID | None,
    ) -> ReconcileResult:
        payment = await self._find_payment_by_intent(gateway_intent_id)
        if payment is None:
            logger.warning(
                "reconcile_payment_not_found",
                gateway_intent_id=gateway_intent_id,
                source=source.value,
            )
            raise PaymentNotFoundError(gateway_intent_id)

        if user_id is not None and payment.user_id != user_id:
            logger.warning(
                "reconcile_owner_mismatch",
                gateway_intent_id=gateway_intent_id,
                payment_id=str(payment.payment_id),
            )
            raise PaymentNotFoundError(gateway_intent_id)

        if payment.status.is_terminal:
            return await self._already_processed(payment, source)

        if source is ReconcileSource.FALLBACK:
            await self._verify_with_gateway(gateway_intent_id)

        claimed = await self._claim_pending_payment(payment.payment_id, source)
        if not claimed:
            # Another caller moved the payment out of pending first
            await self.session.rollback()
            current = await self._find_payment_by_intent(gateway_intent_id)
            if current is None:
                raise PaymentNotFoundError(gateway_intent_id)
            return await self._already_processed(current, source)

        new_balance = await self.ledger.apply_grant(
            payment.user_id, payment.credits_to_grant, payment.plan_id
        )
        await self.session.commit()

        credits_added = self._credits_for(payment)
        metrics.record_reconciliation(source.value, "credited")
        metrics.record_credit_grant(payment.plan_id, credits_added)
        logger.info(
            "payment_reconciled",
            payment_id=str(payment.payment_id),
            gateway_intent_id=gateway_intent_id,
            source=source.value,
            user_id=str(payment.user_id),
            credits_added=credits_added,
            new_balance=new_balance,
        )

        return ReconcileResult(
            payment_id=payment.payment_id,
            status=PaymentStatus.SUCCEEDED,
            credits_added=credits_added,
            new_balance=new_balance,
            already_processed=False,
            source=source,
        )

    async def mark_canceled(self, gateway_intent_id: str) -> bool:
        """
        Move a pending payment to canceled.

        Returns:
            True if the record changed, False if it was already terminal

        Raises:
            PaymentNotFoundError: No record for the intent
        """
        stmt = (
            update(Payment)
            .where(
                Payment.gateway_intent_id == gateway_intent_id,
                Payment.status == PaymentStatus.PENDING.value,
            )
            .values(status=PaymentStatus.CANCELED.value)
            .returning(Payment.id)
        )
        result = await self.session.execute(stmt)
        if result.scalar_one_or_none() is None:
            await self.session.rollback()
            if await self._find_payment_by_intent(gateway_intent_id) is None:
                raise PaymentNotFoundError(gateway_intent_id)
            return False

        await self.session.commit()
        logger.info("payment_canceled", gateway_intent_id=gateway_intent_id)
        return True

    async def record_refund(self, gateway_intent_id: str, refund_amount_minor: int) -> bool:
        """
        Record a refund against a succeeded payment.

        Granted credits are kept; only the record is updated.

        Returns:
            True if the record changed, False if it was not in succeeded

        Raises:
            PaymentNotFoundError: No record for the intent
        """
        stmt = (
            update(Payment)
            .where(
                Payment.gateway_intent_id == gateway_intent_id,
                Payment.status == PaymentStatus.SUCCEEDED.value,
            )
            .values(
                status=PaymentStatus.REFUNDED.value,
                refunded_at=_utc_now(),
                refund_amount_minor=refund_amount_minor,
            )
            .returning(Payment.id)
        )
        result = await self.session.execute(stmt)
        if result.scalar_one_or_none() is None:
            await self.session.rollback()
            if await self._find_payment_by_intent(gateway_intent_id) is None:
                raise PaymentNotFoundError(gateway_intent_id)
            return False

        await self.session.commit()
        logger.info(
            "payment_refunded",
            gateway_intent_id=gateway_intent_id,
            refund_amount_minor=refund_amount_minor,
        )
        return True

    async def get_payment_for_user(self, gateway_intent_id: str, user_id: UUID) -> PaymentData:
        """
        Look up a payment owned by user_id.

        Raises:
            PaymentNotFoundError: Missing, or owned by someone else
        """
        payment = await self._find_payment_by_intent(gateway_intent_id)
        if payment is None or payment.user_id != user_id:
            raise PaymentNotFoundError(gateway_intent_id)
        return payment

    async def get_history(self, user_id: UUID, limit: int = 10) -> list[PaymentData]:
        """Succeeded payments for a user, newest first."""
        stmt = (
            select(Payment)
            .where(
                Payment.user_id == user_id,
                Payment.status == PaymentStatus.SUCCEEDED.value,
            )
            .order_by(Payment.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [self._payment_to_domain(p) for p in result.scalars().all()]

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _verify_with_gateway(self, gateway_intent_id: str) -> None:
        """Fallback path only: the gateway must report the intent as succeeded."""
        try:
            intent = await self.gateway.retrieve_intent(gateway_intent_id)
        except PaymentProviderError as exc:
            metrics.record_reconciliation(ReconcileSource.FALLBACK.value, "rejected")
            raise GatewayVerificationFailedError(gateway_intent_id, exc.message) from exc

        if not intent.succeeded:
            metrics.record_reconciliation(ReconcileSource.FALLBACK.value, "rejected")
            logger.warning(
                "fallback_verification_rejected",
                gateway_intent_id=gateway_intent_id,
                gateway_status=intent.status,
            )
            raise GatewayVerificationFailedError(
                gateway_intent_id, f"intent status is {intent.status}"
            )

    async def _claim_pending_payment(self, payment_id: UUID, source: ReconcileSource) -> bool:
        """
        Conditionally move pending -> succeeded.

        Returns False when the row was no longer pending.
        """
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING.value)
            .values(
                status=PaymentStatus.SUCCEEDED.value,
                processed_at=_utc_now(),
                webhook_confirmed=source is ReconcileSource.WEBHOOK,
            )
            .returning(Payment.id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def _already_processed(
        self, payment: PaymentData, source: ReconcileSource
    ) -> ReconcileResult:
        """No-op result for a payment that is already terminal."""
        balance = await self.ledger.get_balance(payment.user_id)
        granted = payment.status in (PaymentStatus.SUCCEEDED, PaymentStatus.REFUNDED)

        metrics.record_reconciliation(source.value, "already_processed")
        logger.info(
            "payment_already_processed",
            payment_id=str(payment.payment_id),
            gateway_intent_id=payment.gateway_intent_id,
            status=payment.status.value,
            source=source.value,
        )

        return ReconcileResult(
            payment_id=payment.payment_id,
            status=payment.status,
            credits_added=self._credits_for(payment) if granted else 0,
            new_balance=balance,
            already_processed=True,
            source=source,
        )

    def _credits_for(self, payment: PaymentData) -> int:
        if payment.unlimited:
            return settings.unlimited_credits_ceiling
        return payment.credits_to_grant

    async def _find_payment_by_intent(self, gateway_intent_id: str) -> PaymentData | None:
        stmt = (
            select(Payment)
            .where(Payment.gateway_intent_id == gateway_intent_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        payment = result.scalar_one_or_none()
        return self._payment_to_domain(payment) if payment is not None else None

    async def _find_user(self, user_id: UUID) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    def _payment_to_domain(self, payment: Payment) -> PaymentData:
        """Convert ORM payment to domain model."""
        return PaymentData(
            payment_id=payment.id,
            user_id=payment.user_id,
            gateway_intent_id=payment.gateway_intent_id,
            amount_minor=payment.amount_minor,
            currency=payment.currency,
            status=PaymentStatus(payment.status),
            credits_to_grant=payment.credits_to_grant,
            plan_id=payment.plan_id,
            plan_name=payment.plan_name,
            webhook_confirmed=payment.webhook_confirmed,
            created_at=payment.created_at,
            processed_at=payment.processed_at,
            refunded_at=payment.refunded_at,
            refund_amount_minor=payment.refund_amount_minor,
        )
