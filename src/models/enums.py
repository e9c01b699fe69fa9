from __future__ import annotations

from enum import StrEnum
from typing import Final


class UserRole(StrEnum):
    __slots__ = ()

    STUDENT = "student"
    FACULTY = "faculty"
    STAFF = "staff"
    ADMINISTRATOR = "administrator"


class GrievanceCategory(StrEnum):
    __slots__ = ()

    ACADEMIC = "academic"
    INFRASTRUCTURE = "infrastructure"
    ADMINISTRATIVE = "administrative"
    URGENT = "urgent"


class GrievancePriority(StrEnum):
    __slots__ = ()

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class GrievanceStatus(StrEnum):
    __slots__ = ()

    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


# A grievance in one of these states counts as resolved; anything else is pending.
TERMINAL_STATUSES: Final[frozenset[GrievanceStatus]] = frozenset({
    GrievanceStatus.RESOLVED,
    GrievanceStatus.CLOSED,
})

STAFF_ROLES: Final[frozenset[UserRole]] = frozenset({
    UserRole.STAFF,
    UserRole.FACULTY,
    UserRole.ADMINISTRATOR,
})
