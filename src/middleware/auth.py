"""Caller identity for protected endpoints.

Authentication is delegated to the upstream identity provider, which
forwards the authenticated subject in the ``X-User-Id`` header (plus
optional ``X-User-Email`` / ``X-User-First-Name`` / ``X-User-Last-Name``
profile headers).  The FastAPI dependency below turns that into a
:class:`~src.models.grievance.User`, creating the record on first sight.

Outside production a missing header falls back to the configured
development user so the API can be exercised locally without an
identity provider.
"""

from __future__ import annotations

import structlog
from fastapi import Header, HTTPException, Request

from config.settings import settings
from src.models.grievance import User

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


async def get_current_user(
    request: Request,
    x_user_id: str | None = Header(default=None),
    x_user_email: str | None = Header(default=None),
    x_user_first_name: str | None = Header(default=None),
    x_user_last_name: str | None = Header(default=None),
) -> User:
    """FastAPI dependency that resolves the calling user.

    Usage::

        @router.get("/grievances/my")
        async def my_grievances(user: User = Depends(get_current_user)): ...
    """
    users = getattr(request.app.state, "users", None)
    if users is None:
        raise HTTPException(status_code=503, detail="User directory not available")

    user_id = (x_user_id or "").strip()
    if not user_id:
        if settings.is_production:
            logger.warning(
                "auth.missing_identity",
                path=request.url.path,
                client_ip=request.client.host if request.client else "unknown",
            )
            raise HTTPException(
                status_code=401,
                detail="Missing X-User-Id header.",
            )
        user_id = settings.dev_user_id

    user = await users.ensure_user(
        user_id,
        email=x_user_email,
        first_name=x_user_first_name,
        last_name=x_user_last_name,
    )
    structlog.contextvars.bind_contextvars(user_id=user.id)
    return user
