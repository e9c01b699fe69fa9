"""Health check endpoints for the grievance cell API v1.

Provides liveness and readiness checks.  The readiness check verifies
that the store is reachable and the services are wired up.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Basic health check response."""

    status: str
    version: str
    uptime_seconds: float


class ReadinessResponse(BaseModel):
    """Readiness check response with individual component statuses."""

    status: str
    checks: dict[str, str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness check; does *not* check downstream dependencies."""
    start_time: float = getattr(request.app.state, "start_time", time.time())
    uptime = time.time() - start_time

    return HealthResponse(
        status="healthy",
        version=request.app.version,
        uptime_seconds=round(uptime, 2),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Readiness check: store connectivity plus service wiring."""
    checks: dict[str, str] = {}
    all_ok = True

    store = getattr(request.app.state, "store", None)
    if store is None:
        checks["store"] = "not_configured"
        all_ok = False
    else:
        try:
            checks["store"] = "ok" if await store.ping() else "unreachable"
        except Exception as exc:
            checks["store"] = f"error: {exc!s}"
        all_ok = all_ok and checks["store"] == "ok"

    for name in ("lifecycle", "analytics", "notifications", "users"):
        if getattr(request.app.state, name, None) is not None:
            checks[name] = "ok"
        else:
            checks[name] = "not_initialised"
            all_ok = False

    status = "ready" if all_ok else "degraded"

    logger.info("health.readiness_check", status=status, checks=checks)

    return ReadinessResponse(status=status, checks=checks)
