"""Grievance lifecycle manager.

Owns every write to a grievance and to the records hanging off it:

1. **Submission** -- validates the category, derives the default priority
   and SLA deadline, allocates a unique tracking id, stores attachments,
   and notifies the owner.
2. **Status transitions** -- staff-level only.  The first move into a
   terminal status stamps ``resolved_at``; later moves never touch it.
3. **Re-prioritisation** -- administrators only.  The SLA deadline is
   recomputed from the time of the change, not from submission.
4. **Comments, assignments, attachments** -- append-only streams; nothing
   is superseded or deleted.

Status never changes on its own: an SLA breach is detected by comparing
the deadline with the clock when grievances are read.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from src.models.enums import (
    TERMINAL_STATUSES,
    GrievanceCategory,
    GrievancePriority,
    GrievanceStatus,
)
from src.models.grievance import (
    Assignment,
    Attachment,
    Comment,
    FileRecord,
    Grievance,
    GrievanceDetails,
    PublicGrievanceStatus,
    User,
)
from src.services import permissions
from src.services.errors import ConflictError, NotFoundError, ValidationError
from src.services.permissions import Action
from src.services.sla import compute_deadline, resolve_priority
from src.services.tracking import generate_tracking_id, is_valid_tracking_id

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from src.services.file_storage import LocalFileStorage, StoredFile
    from src.services.notifications import NotificationService
    from src.services.storage import GrievanceStore

logger = structlog.get_logger(__name__)


def _parse_status(value: str) -> GrievanceStatus:
    try:
        return GrievanceStatus(value)
    except ValueError:
        raise ValidationError(
            f"Invalid status '{value}'. Valid statuses: {[s.value for s in GrievanceStatus]}"
        ) from None


def _parse_priority(value: str) -> GrievancePriority:
    try:
        return GrievancePriority(value)
    except ValueError:
        raise ValidationError(
            f"Invalid priority '{value}'. Valid priorities: {[p.value for p in GrievancePriority]}"
        ) from None


def _parse_category(value: str) -> GrievanceCategory:
    try:
        return GrievanceCategory(value)
    except ValueError:
        raise ValidationError(
            f"Invalid category '{value}'. Valid categories: {[c.value for c in GrievanceCategory]}"
        ) from None


class GrievanceLifecycleManager:
    """Single entry point for creating and changing grievances.

    Parameters
    ----------
    store:
        Persistence backend.
    notifications:
        Service used to notify owners and assignees.
    file_storage:
        Where attachment bytes go; only the returned path is persisted.
    clock:
        Returns the current aware UTC time.  Injected for tests.
    max_tracking_attempts:
        How many tracking ids to try before giving up with
        :class:`ConflictError`.  Must be at least 1.
    """

    __slots__ = (
        "_clock",
        "_file_storage",
        "_max_tracking_attempts",
        "_notifications",
        "_store",
        "_tracking_id_factory",
    )

    def __init__(
        self,
        store: GrievanceStore,
        notifications: NotificationService,
        file_storage: LocalFileStorage,
        *,
        clock: Callable[[], datetime] | None = None,
        max_tracking_attempts: int = 5,
        tracking_id_factory: Callable[[], str] = generate_tracking_id,
    ) -> None:
        if max_tracking_attempts < 1:
            raise ValueError(f"max_tracking_attempts must be at least 1, got {max_tracking_attempts}")
        self._store = store
        self._notifications = notifications
        self._file_storage = file_storage
        self._clock = clock or (lambda: datetime.now(UTC))
        self._max_tracking_attempts = max_tracking_attempts
        self._tracking_id_factory = tracking_id_factory

    # -- lookups ---------------------------------------------------------------

    async def _require_grievance(self, grievance_id: str) -> Grievance:
        grievance = await self._store.get_grievance(grievance_id)
        if grievance is None:
            raise NotFoundError(f"Grievance '{grievance_id}' not found.")
        return grievance

    async def get(self, grievance_id: str, actor: User) -> Grievance:
        """Return a grievance the actor is allowed to see."""
        grievance = await self._require_grievance(grievance_id)
        permissions.require_view(actor, grievance)
        return grievance

    async def track(self, tracking_id: str) -> PublicGrievanceStatus:
        """Unauthenticated status lookup by tracking id."""
        normalised = tracking_id.strip().upper()
        grievance = None
        if is_valid_tracking_id(normalised):
            grievance = await self._store.get_grievance_by_tracking_id(normalised)
        if grievance is None:
            raise NotFoundError(f"Grievance '{tracking_id}' not found.")
        return PublicGrievanceStatus.from_grievance(grievance)

    async def list_for_owner(self, owner: User) -> list[Grievance]:
        return await self._store.list_grievances(owner_id=owner.id)

    async def list_all(self, actor: User) -> list[Grievance]:
        """Every grievance visible to a staff-level actor."""
        permissions.require(actor, Action.VIEW_ALL)
        grievances = await self._store.list_grievances()
        return [g for g in grievances if permissions.can_view(actor, g)]

    # -- submission ------------------------------------------------------------

    async def _insert_with_tracking_id(self, **fields: object) -> Grievance:
        """Insert a new grievance, drawing fresh tracking ids on collision."""
        for attempt in range(1, self._max_tracking_attempts + 1):
            candidate = Grievance(tracking_id=self._tracking_id_factory(), **fields)
            try:
                return await self._store.insert_grievance(candidate)
            except ConflictError:
                logger.warning(
                    "lifecycle.tracking_id_collision",
                    tracking_id=candidate.tracking_id,
                    attempt=attempt,
                )
        raise ConflictError(
            f"Could not allocate a unique tracking id after {self._max_tracking_attempts} attempts."
        )

    async def submit(
        self,
        details: GrievanceDetails,
        owner: User,
        attachments: Iterable[Attachment] = (),
    ) -> Grievance:
        """Create a grievance in ``submitted`` state.

        Anonymous grievances are stored without an owner; their submitter
        follows them through the tracking id only.
        """
        permissions.require(owner, Action.SUBMIT)
        category = _parse_category(details.category)
        attachments = list(attachments)
        for attachment in attachments:
            self._file_storage.validate(attachment.file_type, len(attachment.data))

        now = self._clock()
        priority = resolve_priority(category)
        user_id = None if details.is_anonymous else owner.id

        # Bytes hit the disk before any record exists; a failed write persists nothing.
        stored_files = [
            (attachment, await self._save_bytes(attachment)) for attachment in attachments
        ]

        grievance = await self._insert_with_tracking_id(
            user_id=user_id,
            is_anonymous=details.is_anonymous,
            title=details.title,
            description=details.description,
            category=category,
            priority=priority,
            status=GrievanceStatus.SUBMITTED,
            is_confidential=details.is_confidential,
            sla_deadline=compute_deadline(priority, now),
            created_at=now,
            updated_at=now,
        )

        log = logger.bind(grievance_id=grievance.id, tracking_id=grievance.tracking_id)

        for attachment, stored in stored_files:
            await self._record_file(grievance.id, attachment, stored, user_id)

        if grievance.user_id is not None:
            await self._notifications.notify_event(grievance.user_id, "submitted", grievance)

        log.info(
            "lifecycle.submitted",
            category=str(category),
            priority=str(priority),
            anonymous=grievance.is_anonymous,
            confidential=grievance.is_confidential,
            attachments=len(attachments),
        )
        return grievance

    # -- transitions -----------------------------------------------------------

    async def set_status(self, grievance_id: str, new_status: str, actor: User) -> Grievance:
        """Move a grievance to *new_status* and notify its owner."""
        await self._require_grievance(grievance_id)
        permissions.require(actor, Action.UPDATE_STATUS)
        status = _parse_status(new_status)
        now = self._clock()

        def _apply(current: Grievance) -> Grievance:
            changes: dict[str, object] = {"status": status, "updated_at": now}
            if status in TERMINAL_STATUSES and current.resolved_at is None:
                changes["resolved_at"] = now
            return current.model_copy(update=changes)

        grievance = await self._store.update_grievance(grievance_id, _apply)

        if grievance.user_id is not None:
            await self._notifications.notify_event(grievance.user_id, "status_update", grievance)

        logger.info(
            "lifecycle.status_changed",
            grievance_id=grievance_id,
            status=str(status),
            actor_id=actor.id,
            resolved_at=grievance.resolved_at.isoformat() if grievance.resolved_at else None,
        )
        return grievance

    async def set_priority(self, grievance_id: str, new_priority: str, actor: User) -> Grievance:
        """Change priority and restart the SLA clock from now."""
        await self._require_grievance(grievance_id)
        permissions.require(actor, Action.UPDATE_PRIORITY)
        priority = _parse_priority(new_priority)
        now = self._clock()

        def _apply(current: Grievance) -> Grievance:
            return current.model_copy(
                update={
                    "priority": priority,
                    "sla_deadline": compute_deadline(priority, now),
                    "updated_at": now,
                }
            )

        grievance = await self._store.update_grievance(grievance_id, _apply)

        if grievance.user_id is not None:
            await self._notifications.notify_event(grievance.user_id, "priority_update", grievance)

        logger.info(
            "lifecycle.priority_changed",
            grievance_id=grievance_id,
            priority=str(priority),
            sla_deadline=grievance.sla_deadline.isoformat() if grievance.sla_deadline else None,
            actor_id=actor.id,
        )
        return grievance

    # -- comments --------------------------------------------------------------

    async def add_comment(
        self,
        grievance_id: str,
        author: User,
        content: str,
        internal: bool = False,
    ) -> Comment:
        """Append a comment to the grievance timeline.

        The grievance record itself is not touched.
        """
        grievance = await self._require_grievance(grievance_id)
        permissions.require_view(author, grievance)
        if internal:
            permissions.require(author, Action.COMMENT_INTERNAL)
        text = content.strip()
        if not text:
            raise ValidationError("Comment content must not be empty.")

        comment = Comment(
            grievance_id=grievance_id,
            user_id=author.id,
            content=text,
            is_internal=internal,
            created_at=self._clock(),
        )
        await self._store.insert_comment(comment)
        logger.info(
            "lifecycle.comment_added",
            grievance_id=grievance_id,
            comment_id=comment.id,
            author_id=author.id,
            internal=internal,
        )
        return comment

    async def list_comments(self, grievance_id: str, actor: User) -> list[Comment]:
        grievance = await self._require_grievance(grievance_id)
        permissions.require_view(actor, grievance)
        comments = await self._store.list_comments(grievance_id)
        if permissions.is_allowed(actor.role, Action.VIEW_INTERNAL):
            return comments
        return [c for c in comments if not c.is_internal]

    # -- assignments -----------------------------------------------------------

    async def assign(
        self,
        grievance_id: str,
        assignee_id: str,
        assigner: User,
        *,
        department: str | None = None,
        deadline: datetime | None = None,
        notes: str | None = None,
    ) -> Assignment:
        """Record a new assignment; earlier assignments stay in the history."""
        grievance = await self._require_grievance(grievance_id)
        permissions.require(assigner, Action.ASSIGN)
        assignee = await self._store.get_user(assignee_id)
        if assignee is None:
            raise NotFoundError(f"User '{assignee_id}' not found.")

        assignment = Assignment(
            grievance_id=grievance_id,
            assigned_to=assignee.id,
            assigned_by=assigner.id,
            department=department,
            deadline=deadline,
            notes=notes,
            created_at=self._clock(),
        )
        await self._store.insert_assignment(assignment)
        await self._notifications.notify_event(assignee.id, "assigned", grievance)

        logger.info(
            "lifecycle.assigned",
            grievance_id=grievance_id,
            assignment_id=assignment.id,
            assigned_to=assignee.id,
            assigned_by=assigner.id,
        )
        return assignment

    async def list_assignments(self, grievance_id: str, actor: User) -> list[Assignment]:
        grievance = await self._require_grievance(grievance_id)
        permissions.require_view(actor, grievance)
        return await self._store.list_assignments(grievance_id)

    # -- attachments -----------------------------------------------------------

    async def _save_bytes(self, attachment: Attachment) -> StoredFile:
        return await self._file_storage.save(
            attachment.data,
            attachment.file_name,
            attachment.file_type,
        )

    async def _record_file(
        self,
        grievance_id: str,
        attachment: Attachment,
        stored: StoredFile,
        uploader: str | None,
    ) -> FileRecord:
        record = FileRecord(
            grievance_id=grievance_id,
            file_name=attachment.file_name,
            file_type=attachment.file_type,
            file_size=stored.size,
            file_path=stored.path,
            uploaded_by=uploader,
            created_at=self._clock(),
        )
        await self._store.insert_file(record)
        return record

    async def attach_file(
        self,
        grievance_id: str,
        uploader: User,
        attachment: Attachment,
    ) -> FileRecord:
        grievance = await self._require_grievance(grievance_id)
        permissions.require_view(uploader, grievance)
        stored = await self._save_bytes(attachment)
        record = await self._record_file(grievance.id, attachment, stored, uploader.id)
        logger.info(
            "lifecycle.file_attached",
            grievance_id=grievance_id,
            file_id=record.id,
            uploaded_by=uploader.id,
        )
        return record

    async def list_files(self, grievance_id: str, actor: User) -> list[FileRecord]:
        grievance = await self._require_grievance(grievance_id)
        permissions.require_view(actor, grievance)
        return await self._store.list_files(grievance_id)
