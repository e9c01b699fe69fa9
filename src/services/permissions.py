"""Role-based capability checks.

All authorization decisions go through this module: one table maps each
:class:`Action` to the roles allowed to perform it, and one visibility
rule decides who may read a grievance.  Failures raise
:class:`~src.services.errors.AuthorizationError` so callers can tell
"forbidden" apart from "not found".
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Final

import structlog

from src.models.enums import STAFF_ROLES, UserRole
from src.services.errors import AuthorizationError

if TYPE_CHECKING:
    from src.models.grievance import Grievance, User

logger = structlog.get_logger(__name__)


class Action(StrEnum):
    __slots__ = ()

    SUBMIT = "submit"
    VIEW_ALL = "view_all"
    UPDATE_STATUS = "update_status"
    UPDATE_PRIORITY = "update_priority"
    ASSIGN = "assign"
    COMMENT_INTERNAL = "comment_internal"
    VIEW_INTERNAL = "view_internal"
    VIEW_ANALYTICS = "view_analytics"
    MANAGE_USERS = "manage_users"


_ADMIN_ONLY: Final[frozenset[UserRole]] = frozenset({UserRole.ADMINISTRATOR})

_CAPABILITIES: Final[dict[Action, frozenset[UserRole]]] = {
    Action.SUBMIT: frozenset(UserRole),
    Action.VIEW_ALL: STAFF_ROLES,
    Action.UPDATE_STATUS: STAFF_ROLES,
    Action.UPDATE_PRIORITY: _ADMIN_ONLY,
    Action.ASSIGN: STAFF_ROLES,
    Action.COMMENT_INTERNAL: STAFF_ROLES,
    Action.VIEW_INTERNAL: STAFF_ROLES,
    Action.VIEW_ANALYTICS: _ADMIN_ONLY,
    Action.MANAGE_USERS: _ADMIN_ONLY,
}


def is_allowed(role: str, action: Action) -> bool:
    return role in _CAPABILITIES[action]


def require(user: User, action: Action) -> None:
    """Raise :class:`AuthorizationError` unless *user* may perform *action*."""
    if not is_allowed(user.role, action):
        logger.warning(
            "permissions.denied",
            user_id=user.id,
            role=str(user.role),
            action=str(action),
        )
        raise AuthorizationError(f"Role '{user.role}' may not {action.replace('_', ' ')}.")


def can_view(user: User, grievance: Grievance) -> bool:
    """Owner always; staff-level unless confidential; administrators always."""
    if grievance.user_id is not None and grievance.user_id == user.id:
        return True
    if user.role == UserRole.ADMINISTRATOR:
        return True
    return user.role in STAFF_ROLES and not grievance.is_confidential


def require_view(user: User, grievance: Grievance) -> None:
    if not can_view(user, grievance):
        logger.warning(
            "permissions.view_denied",
            user_id=user.id,
            grievance_id=grievance.id,
        )
        raise AuthorizationError("You do not have access to this grievance.")
