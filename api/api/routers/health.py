"""Health-check and readiness endpoints.

``/api/v1/health`` is the liveness check; ``/ready`` sits at the root so
orchestrators can gate traffic independently of the API version.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from api import __version__
from api.dependencies import PublicSessionDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(session: PublicSessionDep) -> dict[str, Any]:
    """Return service health.

    Always HTTP 200 so load-balancers see the service as alive; ``db``
    reports whether the database is reachable.
    """
    result: dict[str, Any] = {"status": "healthy", "version": __version__, "db": "ok"}
    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("DB health check failed: %s", exc)
        result["db"] = "degraded"
    return result


readiness_router = APIRouter(tags=["infrastructure"])


@readiness_router.get("/ready")
async def readiness_check(session: PublicSessionDep) -> JSONResponse:
    """HTTP 200 when the database answers, 503 otherwise."""
    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("Readiness: DB check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "version": __version__, "checks": {"db": "unavailable"}},
        )
    return JSONResponse(
        status_code=200,
        content={"status": "ready", "version": __version__, "checks": {"db": "ok"}},
    )
