"""
Tests for the health check route.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError

from visionai.api.status_routes import health_check
from visionai.config import settings


class TestHealthCheck:
    async def test_healthy(self, db_session: AsyncMock):
        result = await health_check(db_session)

        assert result.status == "healthy"
        assert result.database == "connected"
        assert result.version == settings.api_version
        db_session.execute.assert_awaited_once()

    async def test_database_down(self, db_session: AsyncMock):
        db_session.execute = AsyncMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("connection refused"))
        )

        with pytest.raises(HTTPException) as exc_info:
            await health_check(db_session)

        assert exc_info.value.status_code == 503
        assert exc_info.value.detail == "Database unavailable"
