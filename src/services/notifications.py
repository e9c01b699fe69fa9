"""In-app notification service for the grievance cell.

Lifecycle events (submission, status and priority changes, assignment)
produce a :class:`~src.models.grievance.Notification` addressed to the
affected user.  Delivery beyond the in-app inbox (email, SMS) is not
handled here; a notification is simply persisted unread and flipped to
read once its recipient acknowledges it.

Notification types and their titles:
    * ``submitted``         -- "Grievance Submitted"
    * ``status_update``     -- "Status Updated"
    * ``priority_update``   -- "Priority Updated"
    * ``assigned``          -- "Grievance Assigned"
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Final

import structlog

from src.models.grievance import Notification
from src.services.errors import AuthorizationError, NotFoundError

if TYPE_CHECKING:
    from collections.abc import Callable

    from src.models.grievance import Grievance, User
    from src.services.storage import GrievanceStore

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Message templates
# ---------------------------------------------------------------------------

_TEMPLATES: Final[dict[str, tuple[str, str]]] = {
    "submitted": (
        "Grievance Submitted",
        'Your grievance "{title}" has been submitted successfully.',
    ),
    "status_update": (
        "Status Updated",
        "Your grievance status has been updated to {status}.",
    ),
    "priority_update": (
        "Priority Updated",
        "Your grievance priority has been updated to {priority}.",
    ),
    "assigned": (
        "Grievance Assigned",
        'Grievance {tracking_id} "{title}" has been assigned to you.',
    ),
}


def render(notification_type: str, grievance: Grievance) -> tuple[str, str]:
    """Return the ``(title, message)`` pair for a lifecycle event."""
    title, template = _TEMPLATES[notification_type]
    return title, template.format(
        title=grievance.title,
        status=grievance.status.replace("_", " "),
        priority=grievance.priority,
        tracking_id=grievance.tracking_id,
    )


# ---------------------------------------------------------------------------
# Notification Service
# ---------------------------------------------------------------------------


class NotificationService:
    """Creates, lists, and acknowledges in-app notifications."""

    __slots__ = ("_clock", "_store")

    def __init__(
        self,
        store: GrievanceStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))

    async def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        grievance_id: str | None = None,
    ) -> Notification:
        """Persist a new unread notification for *user_id*."""
        notification = Notification(
            user_id=user_id,
            grievance_id=grievance_id,
            title=title,
            message=message,
            created_at=self._clock(),
        )
        await self._store.insert_notification(notification)
        logger.info(
            "notifications.created",
            notification_id=notification.id,
            user_id=user_id,
            grievance_id=grievance_id,
            title=title,
        )
        return notification

    async def notify_event(
        self,
        user_id: str,
        notification_type: str,
        grievance: Grievance,
    ) -> Notification:
        title, message = render(notification_type, grievance)
        return await self.notify(user_id, title, message, grievance_id=grievance.id)

    async def list_for_user(self, user_id: str) -> list[Notification]:
        return await self._store.list_notifications(user_id)

    async def unread_count(self, user_id: str) -> int:
        return sum(1 for n in await self._store.list_notifications(user_id) if not n.is_read)

    async def mark_read(self, notification_id: str, actor: User) -> Notification:
        """Acknowledge a notification.

        Only the recipient may acknowledge it.  The read flag is set once;
        acknowledging an already-read notification leaves it unchanged.
        """
        existing = await self._store.get_notification(notification_id)
        if existing is None:
            raise NotFoundError(f"Notification '{notification_id}' not found.")
        if existing.user_id != actor.id:
            raise AuthorizationError("You can only acknowledge your own notifications.")
        if existing.is_read:
            return existing

        def _mark(notification: Notification) -> Notification:
            if notification.is_read:
                return notification
            return notification.model_copy(update={"is_read": True})

        updated = await self._store.update_notification(notification_id, _mark)
        logger.info("notifications.marked_read", notification_id=notification_id, user_id=actor.id)
        return updated
