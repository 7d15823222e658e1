"""
User accounts - registration, password login and bearer tokens.

Passwords are hashed with Argon2id. Tokens are HS256 JWTs carrying the user
id in "sub".
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from visionai.config import settings
from visionai.db.models import User
from visionai.exceptions import (
    AuthenticationError,
    EmailAlreadyRegisteredError,
    UserNotFoundError,
    WriteVerificationError,
)
from visionai.models.api import PlanTier
from visionai.models.domain import UserData

logger = get_logger(__name__)

JWT_ALGORITHM = "HS256"

password_hasher = PasswordHasher()


def create_access_token(user: UserData) -> str:
    """Issue a bearer token for user."""
    now = datetime.now(UTC)
    payload = {
        "sub": str(user.user_id),
        "email": user.email,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=settings.jwt_expire_hours)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> UUID:
    """
    Validate a bearer token and return the user id it names.

    Raises:
        AuthenticationError: Expired, tampered or malformed token
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError("Invalid token") from exc

    try:
        return UUID(str(payload["sub"]))
    except (KeyError, ValueError) as exc:
        raise AuthenticationError("Invalid token subject") from exc


class UserService:
    """User account operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def register(self, email: str, password: str, name: str) -> UserData:
        """
        Create an account on the free plan with the signup credit allowance.

        Raises:
            EmailAlreadyRegisteredError: Email already has an account
        """
        if await self._find_by_email(email) is not None:
            logger.warning("registration_duplicate_email", email=email)
            raise EmailAlreadyRegisteredError(email)

        user = User(
            email=email,
            name=name,
            password_hash=password_hasher.hash(password),
            credits=settings.signup_credits,
            plan=PlanTier.FREE.value,
            is_active=True,
        )
        self.session.add(user)

        try:
            await self.session.flush()
        except IntegrityError as exc:
            # Concurrent registration of the same email
            await self.session.rollback()
            raise EmailAlreadyRegisteredError(email) from exc

        verified = await self.session.get(User, user.id)
        if verified is None:
            raise WriteVerificationError(f"User {user.id} not found after insert")

        await self.session.commit()
        logger.info("user_registered", user_id=str(user.id), email=email)
        return self._user_to_domain(user)

    async def authenticate(self, email: str, password: str) -> UserData:
        """
        Check credentials and stamp last_login_at.

        Unknown email and wrong password fail identically.

        Raises:
            AuthenticationError: Bad credentials or deactivated account
        """
        user = await self._find_by_email(email)
        if user is None:
            logger.warning("login_unknown_email", email=email)
            raise AuthenticationError("Invalid email or password")

        try:
            password_hasher.verify(user.password_hash, password)
        except (VerifyMismatchError, InvalidHashError) as exc:
            logger.warning("login_password_mismatch", user_id=str(user.id))
            raise AuthenticationError("Invalid email or password") from exc

        if not user.is_active:
            logger.warning("login_inactive_user", user_id=str(user.id))
            raise AuthenticationError("Account is deactivated")

        user.last_login_at = datetime.now(UTC)
        await self.session.commit()

        logger.info("user_logged_in", user_id=str(user.id))
        return self._user_to_domain(user)

    async def get_user(self, user_id: UUID) -> UserData:
        """
        Raises:
            UserNotFoundError: User doesn't exist
        """
        result = await self.session.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(user_id)
        return self._user_to_domain(user)

    async def _find_by_email(self, email: str) -> User | None:
        result = await self.session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    def _user_to_domain(self, user: User) -> UserData:
        return UserData(
            user_id=user.id,
            email=user.email,
            name=user.name,
            credits=user.credits,
            plan=PlanTier(user.plan),
            is_active=user.is_active,
            created_at=user.created_at,
            last_login_at=user.last_login_at,
        )
