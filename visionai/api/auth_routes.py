"""
Auth Routes - registration, login and the current user.

Register and login are rate limited per client.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from visionai.api.dependencies import (
    enforce_rate_limit,
    get_current_user,
    get_login_rate_limiter,
    get_register_rate_limiter,
)
from visionai.db.session import get_db
from visionai.exceptions import (
    AuthenticationError,
    EmailAlreadyRegisteredError,
    WriteVerificationError,
)
from visionai.models.api import AuthResponse, LoginRequest, RegisterRequest, UserResponse
from visionai.models.domain import UserData
from visionai.services.rate_limiter import SlidingWindowRateLimiter
from visionai.services.users import UserService, create_access_token

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _user_response(user: UserData) -> UserResponse:
    return UserResponse(
        id=user.user_id,
        email=user.email,
        name=user.name,
        credits=user.credits,
        plan=user.plan,
        created_at=user.created_at,
        last_login_at=user.last_login_at,
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    limiter: SlidingWindowRateLimiter = Depends(get_register_rate_limiter),
) -> AuthResponse:
    """Create an account and return a bearer token."""
    enforce_rate_limit(limiter, request)

    service = UserService(db)
    try:
        user = await service.register(body.email, body.password, body.name)
    except EmailAlreadyRegisteredError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with this email already exists",
        ) from exc
    except WriteVerificationError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database integrity error",
        ) from exc

    return AuthResponse(user=_user_response(user), token=create_access_token(user))


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    limiter: SlidingWindowRateLimiter = Depends(get_login_rate_limiter),
) -> AuthResponse:
    """Exchange email and password for a bearer token."""
    enforce_rate_limit(limiter, request)

    service = UserService(db)
    try:
        user = await service.authenticate(body.email, body.password)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc

    return AuthResponse(user=_user_response(user), token=create_access_token(user))


@router.get("/me", response_model=UserResponse)
async def me(user: UserData = Depends(get_current_user)) -> UserResponse:
    return _user_response(user)
