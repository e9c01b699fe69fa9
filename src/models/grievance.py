"""Entity models for the grievance cell.

One model per persisted record: users, grievances, and the append-only
streams hanging off a grievance (assignments, comments, files,
notifications).  Records are created by the service layer only and are
never deleted; closing a grievance is a status, not a removal.
"""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import (
    TERMINAL_STATUSES,
    GrievanceCategory,
    GrievancePriority,
    GrievanceStatus,
    UserRole,
)


def _new_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


class User(BaseModel):
    """A campus user as known to the grievance cell.

    Identity is owned by the upstream identity provider; this record
    only adds the role and profile fields the cell needs.
    """

    id: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    profile_image_url: str | None = None
    role: UserRole = UserRole.STUDENT
    department: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Grievance(BaseModel):
    """A complaint and its lifecycle state.

    ``sla_deadline`` is always derived from the current ``priority``;
    ``resolved_at`` is written the first time the grievance reaches a
    terminal status and never cleared afterwards.
    """

    id: str = Field(default_factory=_new_id)
    tracking_id: str
    user_id: str | None = None
    is_anonymous: bool = False
    title: str
    description: str
    category: GrievanceCategory
    priority: GrievancePriority = GrievancePriority.MEDIUM
    status: GrievanceStatus = GrievanceStatus.SUBMITTED
    is_confidential: bool = False
    sla_deadline: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    resolved_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status not in TERMINAL_STATUSES


class Assignment(BaseModel):
    """One entry in a grievance's assignment history."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    grievance_id: str
    assigned_to: str
    assigned_by: str
    department: str | None = None
    deadline: datetime | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class Comment(BaseModel):
    """Timeline entry.  Internal comments are visible to staff only."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    grievance_id: str
    user_id: str
    content: str
    is_internal: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


class FileRecord(BaseModel):
    """Metadata for an uploaded attachment; the bytes live in file storage."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    grievance_id: str
    file_name: str
    file_type: str
    file_size: int
    file_path: str
    uploaded_by: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class Notification(BaseModel):
    """In-app message addressed to a single user."""

    id: str = Field(default_factory=_new_id)
    user_id: str
    grievance_id: str | None = None
    title: str
    message: str
    is_read: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


class Attachment(BaseModel):
    """Raw upload handed to the service layer before it is stored."""

    file_name: str
    file_type: str
    data: bytes


class GrievanceDetails(BaseModel):
    """Submitter-provided fields of a new grievance."""

    title: str = Field(..., min_length=1, max_length=300)
    description: str = Field(..., min_length=1, max_length=10_000)
    category: str
    is_anonymous: bool = False
    is_confidential: bool = False


class PublicGrievanceStatus(BaseModel):
    """What an unauthenticated tracking-id lookup is allowed to see."""

    tracking_id: str
    title: str
    category: GrievanceCategory
    priority: GrievancePriority
    status: GrievanceStatus
    sla_deadline: datetime | None
    created_at: datetime
    updated_at: datetime
    resolved_at: datetime | None

    @classmethod
    def from_grievance(cls, grievance: Grievance) -> PublicGrievanceStatus:
        return cls(
            tracking_id=grievance.tracking_id,
            title=grievance.title,
            category=grievance.category,
            priority=grievance.priority,
            status=grievance.status,
            sla_deadline=grievance.sla_deadline,
            created_at=grievance.created_at,
            updated_at=grievance.updated_at,
            resolved_at=grievance.resolved_at,
        )
