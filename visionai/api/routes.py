"""
API Routes - credit plans, purchases and the Stripe webhook.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from visionai.api.dependencies import get_current_user, get_payment_gateway
from visionai.config import settings
from visionai.db.session import get_db
from visionai.exceptions import (
    DuplicatePaymentError,
    GatewayError,
    GatewayVerificationFailedError,
    InvalidPlanError,
    PaymentNotFoundError,
    UserInactiveError,
    UserNotFoundError,
    WebhookVerificationError,
    WriteVerificationError,
)
from visionai.models.api import (
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    CreatePaymentIntentRequest,
    CreatePaymentIntentResponse,
    PaymentHistoryResponse,
    PaymentResponse,
    PaymentStatus,
    PlanListResponse,
    PlanResponse,
    ReconcileSource,
    WebhookAckResponse,
)
from visionai.models.domain import PaymentData, Plan, ReconcileResult, UserData
from visionai.observability.metrics import metrics
from visionai.services.payment_gateway import PaymentGateway
from visionai.services.payments import PaymentReconciler
from visionai.services.plans import plan_catalog

logger = get_logger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


def _plan_response(plan: Plan) -> PlanResponse:
    return PlanResponse(
        id=plan.id,
        name=plan.name,
        price_minor=plan.price_minor,
        currency=settings.currency,
        credits=None if plan.unlimited else plan.credits,
        unlimited=plan.unlimited,
        description=plan.description,
    )


def _payment_response(payment: PaymentData) -> PaymentResponse:
    return PaymentResponse(
        id=payment.payment_id,
        payment_intent_id=payment.gateway_intent_id,
        plan_id=payment.plan_id,
        plan_name=payment.plan_name,
        credits=None if payment.unlimited else payment.credits_to_grant,
        amount_minor=payment.amount_minor,
        currency=payment.currency,
        status=payment.status,
        created_at=payment.created_at,
        processed_at=payment.processed_at,
    )


def _confirm_response(result: ReconcileResult) -> ConfirmPaymentResponse:
    granted = result.status in (PaymentStatus.SUCCEEDED, PaymentStatus.REFUNDED)
    if not granted:
        message = f"Payment is {result.status.value}"
    elif result.already_processed:
        message = "Payment already processed"
    else:
        message = f"Payment confirmed, {result.credits_added} credits added"

    return ConfirmPaymentResponse(
        success=granted,
        message=message,
        status=result.status,
        credits_added=result.credits_added,
        new_balance=result.new_balance,
        already_processed=result.already_processed,
    )


@router.get("/plans", response_model=PlanListResponse)
async def list_plans() -> PlanListResponse:
    """Plan catalog, free tier first."""
    return PlanListResponse(plans=[_plan_response(plan) for plan in plan_catalog.all()])


@router.post(
    "/create-payment-intent",
    response_model=CreatePaymentIntentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_intent(
    request: CreatePaymentIntentRequest,
    db: AsyncSession = Depends(get_db),
    user: UserData = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> CreatePaymentIntentResponse:
    """
    Start a plan purchase.

    Creates the Stripe PaymentIntent and its pending payment record. The
    client completes payment with client_secret, then either the webhook or
    POST /confirm (or both) credits the account.
    """
    reconciler = PaymentReconciler(db, gateway)

    try:
        pending = await reconciler.create_pending_payment(user.user_id, request.plan_id)
    except InvalidPlanError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid plan: {exc.plan_id}",
        ) from exc
    except UserNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        ) from exc
    except UserInactiveError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        ) from exc
    except DuplicatePaymentError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Payment already exists for this intent",
        ) from exc
    except GatewayError as exc:
        metrics.record_error("GatewayError", "create_payment_intent")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Payment provider error, please try again",
        ) from exc
    except WriteVerificationError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database integrity error",
        ) from exc

    return CreatePaymentIntentResponse(
        payment_id=pending.payment_id,
        payment_intent_id=pending.gateway_intent_id,
        client_secret=pending.client_secret,
        publishable_key=settings.stripe_publishable_key,
        plan=_plan_response(pending.plan),
    )


@router.post("/confirm", response_model=ConfirmPaymentResponse)
async def confirm_payment(
    request: ConfirmPaymentRequest,
    db: AsyncSession = Depends(get_db),
    user: UserData = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> ConfirmPaymentResponse:
    """
    Client fallback confirmation.

    Re-verifies the intent with Stripe before crediting. Repeating the call,
    or racing the webhook, returns the already-recorded outcome.
    """
    reconciler = PaymentReconciler(db, gateway)

    try:
        result = await reconciler.reconcile(
            request.payment_intent_id, ReconcileSource.FALLBACK, user_id=user.user_id
        )
    except PaymentNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Payment not found",
        ) from exc
    except GatewayVerificationFailedError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Payment has not succeeded yet",
        ) from exc

    return _confirm_response(result)


@router.post("/webhook", response_model=WebhookAckResponse)
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> WebhookAckResponse:
    """
    Handle Stripe webhook events.

    The signature is verified before anything else. Unexpected errors
    propagate as 500 so Stripe retries; reconciliation is idempotent.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")

    try:
        event = await gateway.verify_webhook(payload, signature)
    except WebhookVerificationError as exc:
        metrics.record_error("WebhookVerificationError", "stripe_webhook")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook signature",
        ) from exc

    logger.info(
        "stripe_webhook_received",
        event_id=event.event_id,
        event_type=event.event_type,
        payment_intent_id=event.intent_id,
    )

    handled = {
        "payment_intent.succeeded",
        "payment_intent.canceled",
        "charge.refunded",
    }
    if event.event_type == "payment_intent.payment_failed":
        # The customer may retry with another card on the same intent
        logger.warning(
            "stripe_payment_failed",
            event_id=event.event_id,
            payment_intent_id=event.intent_id,
        )
        return WebhookAckResponse(status="acknowledged", event_id=event.event_id)

    if event.event_type not in handled or not event.intent_id:
        logger.info(
            "stripe_webhook_ignored", event_id=event.event_id, event_type=event.event_type
        )
        return WebhookAckResponse(status="ignored", event_id=event.event_id)

    reconciler = PaymentReconciler(db, gateway)

    try:
        if event.event_type == "payment_intent.succeeded":
            result = await reconciler.reconcile(event.intent_id, ReconcileSource.WEBHOOK)
            ack = "already_processed" if result.already_processed else "processed"
        elif event.event_type == "payment_intent.canceled":
            changed = await reconciler.mark_canceled(event.intent_id)
            ack = "processed" if changed else "already_processed"
        else:
            changed = await reconciler.record_refund(
                event.intent_id, event.amount_refunded_minor or 0
            )
            ack = "processed" if changed else "already_processed"
    except PaymentNotFoundError:
        # Intent created outside this service
        logger.warning(
            "stripe_webhook_unknown_payment",
            event_id=event.event_id,
            payment_intent_id=event.intent_id,
        )
        return WebhookAckResponse(status="ignored", event_id=event.event_id)

    return WebhookAckResponse(status=ack, event_id=event.event_id)


@router.get("/history", response_model=PaymentHistoryResponse)
async def payment_history(
    limit: int = 10,
    db: AsyncSession = Depends(get_db),
    user: UserData = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> PaymentHistoryResponse:
    """Succeeded payments for the caller, newest first."""
    reconciler = PaymentReconciler(db, gateway)
    payments = await reconciler.get_history(user.user_id, limit=min(max(limit, 1), 100))
    return PaymentHistoryResponse(payments=[_payment_response(p) for p in payments])


@router.get("/{payment_intent_id}", response_model=PaymentResponse)
async def get_payment(
    payment_intent_id: str,
    db: AsyncSession = Depends(get_db),
    user: UserData = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> PaymentResponse:
    """One of the caller's payments, by Stripe intent id."""
    reconciler = PaymentReconciler(db, gateway)

    try:
        payment = await reconciler.get_payment_for_user(payment_intent_id, user.user_id)
    except PaymentNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Payment not found",
        ) from exc

    return _payment_response(payment)
