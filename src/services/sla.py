"""Priority and SLA derivation.

Every grievance gets a default priority from its category and an SLA
deadline from its priority.  Both tables are fixed; values outside the
enumerations fall back to medium / 72 hours rather than failing.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Final

from src.models.enums import GrievanceCategory, GrievancePriority

if TYPE_CHECKING:
    from src.models.grievance import Grievance


_CATEGORY_PRIORITY: Final[dict[str, GrievancePriority]] = {
    GrievanceCategory.URGENT: GrievancePriority.CRITICAL,
    GrievanceCategory.ACADEMIC: GrievancePriority.HIGH,
    GrievanceCategory.INFRASTRUCTURE: GrievancePriority.MEDIUM,
    GrievanceCategory.ADMINISTRATIVE: GrievancePriority.LOW,
}

SLA_HOURS: Final[dict[str, int]] = {
    GrievancePriority.CRITICAL: 24,
    GrievancePriority.HIGH: 48,
    GrievancePriority.MEDIUM: 72,
    GrievancePriority.LOW: 120,
}

DEFAULT_PRIORITY: Final[GrievancePriority] = GrievancePriority.MEDIUM
DEFAULT_SLA_HOURS: Final[int] = 72


def resolve_priority(category: str) -> GrievancePriority:
    """Return the default priority for *category*."""
    return _CATEGORY_PRIORITY.get(category, DEFAULT_PRIORITY)


def sla_hours(priority: str) -> int:
    return SLA_HOURS.get(priority, DEFAULT_SLA_HOURS)


def compute_deadline(priority: str, reference_time: datetime) -> datetime:
    """Return the resolution deadline for a grievance prioritised at *reference_time*."""
    return reference_time + timedelta(hours=sla_hours(priority))


def is_overdue(grievance: Grievance, now: datetime) -> bool:
    """A pending grievance whose SLA deadline has already passed."""
    return (
        grievance.is_pending
        and grievance.sla_deadline is not None
        and grievance.sla_deadline < now
    )
