"""
Tests for API dependencies.

Covers bearer authentication, gateway construction, client identification
and rate limit enforcement.
"""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from visionai.api.dependencies import (
    client_identifier,
    enforce_rate_limit,
    get_current_user,
    get_login_rate_limiter,
    get_payment_gateway,
    get_register_rate_limiter,
)
from visionai.exceptions import UserNotFoundError
from visionai.models.domain import UserData
from visionai.services.rate_limiter import SlidingWindowRateLimiter
from visionai.services.stripe_gateway import StripeGateway
from visionai.services.users import create_access_token


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def make_request(headers: dict | None = None, host: str | None = "192.0.2.10") -> MagicMock:
    request = MagicMock()
    request.headers = headers or {}
    if host is None:
        request.client = None
    else:
        request.client.host = host
    return request


class TestGetCurrentUser:
    """Tests for bearer token authentication."""

    async def test_no_credentials_raises_401(self, db_session: AsyncMock):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(None, db_session)

        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}

    async def test_invalid_token_raises_401(self, db_session: AsyncMock):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(bearer("not-a-jwt"), db_session)

        assert exc_info.value.status_code == 401

    async def test_valid_token_returns_user(self, db_session: AsyncMock, user_data: UserData):
        with patch("visionai.api.dependencies.UserService") as MockService:
            MockService.return_value.get_user = AsyncMock(return_value=user_data)

            user = await get_current_user(bearer(create_access_token(user_data)), db_session)

        MockService.return_value.get_user.assert_awaited_once_with(user_data.user_id)
        assert user is user_data

    async def test_deleted_user_raises_401(self, db_session: AsyncMock, user_data: UserData):
        with patch("visionai.api.dependencies.UserService") as MockService:
            MockService.return_value.get_user = AsyncMock(
                side_effect=UserNotFoundError(user_data.user_id)
            )

            with pytest.raises(HTTPException) as exc_info:
                await get_current_user(bearer(create_access_token(user_data)), db_session)

        assert exc_info.value.status_code == 401

    async def test_inactive_user_raises_401(self, db_session: AsyncMock, user_data: UserData):
        inactive = UserData(**{**user_data.__dict__, "is_active": False})

        with patch("visionai.api.dependencies.UserService") as MockService:
            MockService.return_value.get_user = AsyncMock(return_value=inactive)

            with pytest.raises(HTTPException) as exc_info:
                await get_current_user(bearer(create_access_token(inactive)), db_session)

        assert exc_info.value.status_code == 401


class TestGetPaymentGateway:
    def test_builds_stripe_gateway(self):
        gateway = get_payment_gateway()
        assert isinstance(gateway, StripeGateway)

    def test_unconfigured_raises_503(self):
        with patch("visionai.api.dependencies.settings") as mock_settings:
            mock_settings.stripe_configured = False

            with pytest.raises(HTTPException) as exc_info:
                get_payment_gateway()

        assert exc_info.value.status_code == 503


class TestClientIdentifier:
    """Tests for rate limit client keys."""

    def test_socket_peer(self):
        assert client_identifier(make_request()) == "192.0.2.10"

    def test_forwarded_header_ignored(self):
        request = make_request({"x-forwarded-for": "203.0.113.5, 10.0.0.1"})
        assert client_identifier(request) == "192.0.2.10"

    def test_unknown(self):
        assert client_identifier(make_request(host=None)) == "unknown"


class TestRateLimitDependencies:
    def test_limiters_come_from_app_state(self):
        request = MagicMock()
        login = SlidingWindowRateLimiter("login", 5, 900)
        register = SlidingWindowRateLimiter("register", 3, 3600)
        request.app.state.login_rate_limiter = login
        request.app.state.register_rate_limiter = register

        assert get_login_rate_limiter(request) is login
        assert get_register_rate_limiter(request) is register

    def test_enforce_allows_then_raises_429(self):
        limiter = SlidingWindowRateLimiter("login", max_attempts=1, window_seconds=60)
        request = make_request()

        enforce_rate_limit(limiter, request)
        with pytest.raises(HTTPException) as exc_info:
            enforce_rate_limit(limiter, request)

        assert exc_info.value.status_code == 429
        assert 1 <= int(exc_info.value.headers["Retry-After"]) <= 60

    def test_rotating_forwarded_header_still_limited(self):
        limiter = SlidingWindowRateLimiter("login", max_attempts=5, window_seconds=900)

        for _ in range(5):
            enforce_rate_limit(limiter, make_request({"x-forwarded-for": str(uuid4())}))
        with pytest.raises(HTTPException) as exc_info:
            enforce_rate_limit(limiter, make_request({"x-forwarded-for": str(uuid4())}))

        assert exc_info.value.status_code == 429
        assert len(limiter) == 1
