"""Tests for the liveness and readiness checks."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from api import __version__
from api.dependencies import get_db_session


@pytest.fixture()
def db_session(app) -> AsyncMock:
    session = AsyncMock()

    async def _override():
        yield session

    app.dependency_overrides[get_db_session] = _override
    return session


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy(self, client, db_session) -> None:
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy", "version": __version__, "db": "ok"}

    @pytest.mark.asyncio
    async def test_degraded_database_still_200(self, client, db_session) -> None:
        db_session.execute.side_effect = OSError("connection refused")
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["db"] == "degraded"


class TestReadiness:
    @pytest.mark.asyncio
    async def test_ready(self, client, db_session) -> None:
        resp = await client.get("/ready")
        assert resp.status_code == 200
        assert resp.json()["checks"] == {"db": "ok"}

    @pytest.mark.asyncio
    async def test_not_ready(self, client, db_session) -> None:
        db_session.execute.side_effect = OSError("connection refused")
        resp = await client.get("/ready")
        assert resp.status_code == 503
        assert resp.json()["status"] == "not_ready"

    @pytest.mark.asyncio
    async def test_correlation_id_echoed(self, client, db_session) -> None:
        resp = await client.get("/ready", headers={"X-Correlation-ID": "abc-123"})
        assert resp.headers["X-Correlation-ID"] == "abc-123"
