"""In-app notification endpoints for the current user."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from src.middleware.auth import get_current_user
from src.models.grievance import Notification, User
from src.services.notifications import NotificationService

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationListResponse(BaseModel):
    notifications: list[Notification]
    unread: int


def _notifications(request: Request) -> NotificationService:
    service = getattr(request.app.state, "notifications", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Notification service not available")
    return service


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    request: Request,
    user: User = Depends(get_current_user),
) -> NotificationListResponse:
    """The caller's notifications, newest first, with the unread count."""
    service = _notifications(request)
    return NotificationListResponse(
        notifications=await service.list_for_user(user.id),
        unread=await service.unread_count(user.id),
    )


@router.patch("/{notification_id}/read", response_model=Notification)
async def mark_notification_read(
    notification_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> Notification:
    return await _notifications(request).mark_read(notification_id, user)
