"""
FastAPI Dependencies - Authentication, gateway access and rate limiting.

NO DICTIONARIES - All dependencies return typed objects.
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from visionai.config import settings
from visionai.db.session import get_db
from visionai.exceptions import AuthenticationError, UserNotFoundError
from visionai.models.domain import UserData
from visionai.services.payment_gateway import PaymentGateway
from visionai.services.rate_limiter import SlidingWindowRateLimiter
from visionai.services.stripe_gateway import StripeGateway
from visionai.services.users import UserService, decode_access_token

logger = get_logger(__name__)

# Bearer token scheme for JWT auth
bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> UserData:
    """
    FastAPI dependency resolving the bearer token to an active user.

    Usage:
        @router.get("/api/auth/me")
        async def me(user: UserData = Depends(get_current_user)):
            ...

    Raises:
        HTTPException 401 if no token, bad token, or unknown/inactive user
    """
    if credentials is None:
        raise _unauthorized("Authorization header required")

    try:
        user_id = decode_access_token(credentials.credentials)
    except AuthenticationError as exc:
        logger.warning("bearer_token_rejected", reason=exc.message)
        raise _unauthorized(exc.message) from exc

    try:
        user = await UserService(db).get_user(user_id)
    except UserNotFoundError as exc:
        raise _unauthorized("User not found") from exc

    if not user.is_active:
        raise _unauthorized("Account is deactivated")
    return user


def get_payment_gateway() -> PaymentGateway:
    """
    Build the Stripe gateway from settings.

    Raises:
        HTTPException 503 when Stripe keys are not configured
    """
    if not settings.stripe_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment provider not configured",
        )
    return StripeGateway(
        api_key=settings.stripe_api_key,
        webhook_secret=settings.stripe_webhook_secret,
        timeout_seconds=settings.gateway_timeout_seconds,
    )


def client_identifier(request: Request) -> str:
    """
    Socket peer address, else "unknown".

    X-Forwarded-For is client-controlled and never read here. Behind a
    reverse proxy, uvicorn's proxy headers support rewrites request.client
    for peers listed in FORWARDED_ALLOW_IPS.
    """
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def get_login_rate_limiter(request: Request) -> SlidingWindowRateLimiter:
    limiter: SlidingWindowRateLimiter = request.app.state.login_rate_limiter
    return limiter


def get_register_rate_limiter(request: Request) -> SlidingWindowRateLimiter:
    limiter: SlidingWindowRateLimiter = request.app.state.register_rate_limiter
    return limiter


def enforce_rate_limit(limiter: SlidingWindowRateLimiter, request: Request) -> None:
    """
    Count this request against limiter.

    Raises:
        HTTPException 429 with Retry-After when the client is over the limit
    """
    decision = limiter.check_and_record(client_identifier(request))
    if not decision.allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many attempts, please try again later",
            headers={"Retry-After": str(decision.retry_after_seconds)},
        )
