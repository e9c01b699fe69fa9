"""Tests for the grievance lifecycle manager.

Covers submission (priority, SLA deadline, tracking ids, anonymity),
status and priority transitions, comments, assignments and attachments,
and the visibility rules that guard each of them.
"""

from __future__ import annotations

import itertools
from datetime import timedelta
from pathlib import Path

import pytest

from src.models.enums import GrievancePriority, GrievanceStatus
from src.models.grievance import Attachment, GrievanceDetails, User
from src.services.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from src.services.file_storage import LocalFileStorage
from src.services.lifecycle import GrievanceLifecycleManager
from src.services.notifications import NotificationService
from src.services.storage import InMemoryGrievanceStore

from tests.conftest import T0, FakeClock


def _details(category: str = "academic", **overrides: object) -> GrievanceDetails:
    fields: dict[str, object] = {
        "title": "Exam result withheld",
        "description": "My semester result shows as withheld without reason.",
        "category": category,
    }
    fields.update(overrides)
    return GrievanceDetails(**fields)


# -----------------------------------------------------------------------
# Submission
# -----------------------------------------------------------------------


class TestSubmit:
    async def test_urgent_submission_is_critical_with_24h_deadline(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
    ) -> None:
        g = await manager.submit(_details("urgent"), student)
        assert g.priority == GrievancePriority.CRITICAL
        assert g.sla_deadline == T0 + timedelta(hours=24)
        assert g.status == GrievanceStatus.SUBMITTED
        assert g.created_at == T0
        assert g.user_id == student.id
        assert g.resolved_at is None

    @pytest.mark.parametrize(
        ("category", "priority", "hours"),
        [
            ("academic", GrievancePriority.HIGH, 48),
            ("infrastructure", GrievancePriority.MEDIUM, 72),
            ("administrative", GrievancePriority.LOW, 120),
        ],
    )
    async def test_priority_and_deadline_follow_category(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
        category: str,
        priority: GrievancePriority,
        hours: int,
    ) -> None:
        g = await manager.submit(_details(category), student)
        assert g.priority == priority
        assert g.sla_deadline == T0 + timedelta(hours=hours)

    async def test_unknown_category_rejected(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await manager.submit(_details("sports"), student)
        assert exc_info.value.status_code == 400

    async def test_tracking_id_format(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        assert g.tracking_id.startswith("GRV-")
        assert len(g.tracking_id) == 13

    async def test_owner_is_notified(
        self,
        manager: GrievanceLifecycleManager,
        notifications: NotificationService,
        student: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        inbox = await notifications.list_for_user(student.id)
        assert len(inbox) == 1
        assert inbox[0].title == "Grievance Submitted"
        assert g.title in inbox[0].message
        assert inbox[0].grievance_id == g.id
        assert inbox[0].is_read is False

    async def test_anonymous_submission_has_no_owner_and_no_notification(
        self,
        manager: GrievanceLifecycleManager,
        notifications: NotificationService,
        seeded_store: InMemoryGrievanceStore,
        student: User,
    ) -> None:
        g = await manager.submit(_details(is_anonymous=True), student)
        assert g.user_id is None
        assert g.is_anonymous is True
        assert await notifications.list_for_user(student.id) == []
        assert await seeded_store.list_grievances(owner_id=student.id) == []

    async def test_collision_is_retried(
        self,
        seeded_store: InMemoryGrievanceStore,
        notifications: NotificationService,
        file_storage: LocalFileStorage,
        clock: FakeClock,
        student: User,
    ) -> None:
        ids = iter(["GRV-AAAA-AAAA", "GRV-AAAA-AAAA", "GRV-BBBB-BBBB"])
        manager = GrievanceLifecycleManager(
            seeded_store,
            notifications,
            file_storage,
            clock=clock,
            tracking_id_factory=lambda: next(ids),
        )
        first = await manager.submit(_details(), student)
        second = await manager.submit(_details(), student)
        assert first.tracking_id == "GRV-AAAA-AAAA"
        assert second.tracking_id == "GRV-BBBB-BBBB"

    async def test_conflict_after_retries_exhausted(
        self,
        seeded_store: InMemoryGrievanceStore,
        notifications: NotificationService,
        file_storage: LocalFileStorage,
        clock: FakeClock,
        student: User,
    ) -> None:
        calls = itertools.count()

        def _same_id() -> str:
            next(calls)
            return "GRV-SAME-SAME"

        manager = GrievanceLifecycleManager(
            seeded_store,
            notifications,
            file_storage,
            clock=clock,
            max_tracking_attempts=3,
            tracking_id_factory=_same_id,
        )
        await manager.submit(_details(), student)
        with pytest.raises(ConflictError):
            await manager.submit(_details(), student)
        # one call for the first submission, three attempts for the second
        assert next(calls) == 4
        assert seeded_store.grievance_count == 1

    async def test_attachments_are_stored(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
    ) -> None:
        attachment = Attachment(file_name="proof.pdf", file_type="application/pdf", data=b"%PDF-1.4")
        g = await manager.submit(_details(), student, [attachment])
        files = await manager.list_files(g.id, student)
        assert len(files) == 1
        assert files[0].file_name == "proof.pdf"
        assert files[0].file_size == 8
        assert files[0].uploaded_by == student.id

    async def test_invalid_attachment_rejects_whole_submission(
        self,
        manager: GrievanceLifecycleManager,
        seeded_store: InMemoryGrievanceStore,
        student: User,
    ) -> None:
        attachment = Attachment(file_name="run.exe", file_type="application/x-msdownload", data=b"MZ")
        with pytest.raises(ValidationError):
            await manager.submit(_details(), student, [attachment])
        assert seeded_store.grievance_count == 0

    async def test_failed_attachment_write_persists_nothing(
        self,
        seeded_store: InMemoryGrievanceStore,
        notifications: NotificationService,
        clock: FakeClock,
        student: User,
        tmp_path: Path,
    ) -> None:
        # The upload directory path is taken by a regular file, so the write fails
        blocker = tmp_path / "uploads"
        blocker.write_bytes(b"")
        manager = GrievanceLifecycleManager(
            seeded_store,
            notifications,
            LocalFileStorage(blocker, allowed_types=["application/pdf"]),
            clock=clock,
        )
        attachment = Attachment(file_name="proof.pdf", file_type="application/pdf", data=b"%PDF-1.4")

        with pytest.raises(OSError):
            await manager.submit(_details(), student, [attachment])

        assert seeded_store.grievance_count == 0, "No grievance may be stored when its files fail"
        assert await seeded_store.list_grievances() == []
        assert await notifications.list_for_user(student.id) == []

    async def test_rejects_zero_tracking_attempts(
        self,
        seeded_store: InMemoryGrievanceStore,
        notifications: NotificationService,
        file_storage: LocalFileStorage,
    ) -> None:
        with pytest.raises(ValueError, match="max_tracking_attempts"):
            GrievanceLifecycleManager(
                seeded_store,
                notifications,
                file_storage,
                max_tracking_attempts=0,
            )


# -----------------------------------------------------------------------
# Status transitions
# -----------------------------------------------------------------------


class TestSetStatus:
    async def test_student_cannot_change_status(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        with pytest.raises(AuthorizationError):
            await manager.set_status(g.id, "resolved", student)
        unchanged = await manager.get(g.id, student)
        assert unchanged.status == GrievanceStatus.SUBMITTED

    async def test_staff_resolves_and_owner_is_notified(
        self,
        manager: GrievanceLifecycleManager,
        notifications: NotificationService,
        clock: FakeClock,
        student: User,
        staff: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        resolved_time = clock.advance(hours=5)

        updated = await manager.set_status(g.id, "resolved", staff)
        assert updated.status == GrievanceStatus.RESOLVED
        assert updated.resolved_at == resolved_time
        assert updated.updated_at == resolved_time

        latest = (await notifications.list_for_user(student.id))[0]
        assert latest.title == "Status Updated"
        assert "resolved" in latest.message

    async def test_underscores_are_readable_in_message(
        self,
        manager: GrievanceLifecycleManager,
        notifications: NotificationService,
        student: User,
        faculty: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        await manager.set_status(g.id, "in_progress", faculty)
        latest = (await notifications.list_for_user(student.id))[0]
        assert "in progress" in latest.message

    async def test_resolved_at_is_set_only_once(
        self,
        manager: GrievanceLifecycleManager,
        clock: FakeClock,
        student: User,
        staff: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        first_resolution = clock.advance(hours=2)
        await manager.set_status(g.id, "resolved", staff)

        clock.advance(hours=3)
        await manager.set_status(g.id, "in_progress", staff)
        clock.advance(hours=3)
        closed = await manager.set_status(g.id, "closed", staff)

        assert closed.status == GrievanceStatus.CLOSED
        assert closed.resolved_at == first_resolution

    async def test_non_terminal_status_leaves_resolved_at_unset(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
        staff: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        updated = await manager.set_status(g.id, "under_review", staff)
        assert updated.resolved_at is None

    async def test_invalid_status_rejected(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
        staff: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        with pytest.raises(ValidationError):
            await manager.set_status(g.id, "reopened", staff)

    async def test_missing_grievance(
        self,
        manager: GrievanceLifecycleManager,
        staff: User,
    ) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            await manager.set_status("does-not-exist", "resolved", staff)
        assert exc_info.value.status_code == 404

    async def test_anonymous_owner_not_notified(
        self,
        manager: GrievanceLifecycleManager,
        notifications: NotificationService,
        student: User,
        staff: User,
    ) -> None:
        g = await manager.submit(_details(is_anonymous=True), student)
        await manager.set_status(g.id, "resolved", staff)
        assert await notifications.list_for_user(student.id) == []


# -----------------------------------------------------------------------
# Re-prioritisation
# -----------------------------------------------------------------------


class TestSetPriority:
    async def test_deadline_recomputed_from_now(
        self,
        manager: GrievanceLifecycleManager,
        clock: FakeClock,
        student: User,
        admin: User,
    ) -> None:
        g = await manager.submit(_details("urgent"), student)
        now = clock.advance(hours=10)

        updated = await manager.set_priority(g.id, "low", admin)
        assert updated.priority == GrievancePriority.LOW
        assert updated.sla_deadline == now + timedelta(hours=120)
        assert updated.created_at == T0

    @pytest.mark.parametrize("role_fixture", ["student", "staff", "faculty"])
    async def test_non_admin_rejected(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
        role_fixture: str,
        request: pytest.FixtureRequest,
    ) -> None:
        actor: User = request.getfixturevalue(role_fixture)
        g = await manager.submit(_details(), student)
        with pytest.raises(AuthorizationError):
            await manager.set_priority(g.id, "critical", actor)

    async def test_invalid_priority_rejected(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
        admin: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        with pytest.raises(ValidationError):
            await manager.set_priority(g.id, "asap", admin)

    async def test_owner_notified(
        self,
        manager: GrievanceLifecycleManager,
        notifications: NotificationService,
        student: User,
        admin: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        await manager.set_priority(g.id, "critical", admin)
        latest = (await notifications.list_for_user(student.id))[0]
        assert latest.title == "Priority Updated"
        assert "critical" in latest.message


# -----------------------------------------------------------------------
# Visibility
# -----------------------------------------------------------------------


class TestVisibility:
    async def test_confidential_hidden_from_staff(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
        staff: User,
        admin: User,
    ) -> None:
        g = await manager.submit(_details(is_confidential=True), student)

        with pytest.raises(AuthorizationError):
            await manager.get(g.id, staff)
        assert (await manager.get(g.id, admin)).id == g.id
        assert (await manager.get(g.id, student)).id == g.id

    async def test_other_student_cannot_read(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
        other_student: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        with pytest.raises(AuthorizationError):
            await manager.get(g.id, other_student)

    async def test_list_all_filters_confidential_for_staff(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
        staff: User,
        admin: User,
    ) -> None:
        public = await manager.submit(_details(), student)
        secret = await manager.submit(_details(is_confidential=True), student)

        assert [g.id for g in await manager.list_all(staff)] == [public.id]
        assert {g.id for g in await manager.list_all(admin)} == {public.id, secret.id}

    async def test_list_all_forbidden_for_students(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
    ) -> None:
        with pytest.raises(AuthorizationError):
            await manager.list_all(student)

    async def test_list_for_owner(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
        other_student: User,
    ) -> None:
        mine = await manager.submit(_details(), student)
        await manager.submit(_details(), other_student)
        assert [g.id for g in await manager.list_for_owner(student)] == [mine.id]


class TestTrack:
    async def test_lookup_by_tracking_id(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
    ) -> None:
        g = await manager.submit(_details(is_anonymous=True), student)
        public = await manager.track(g.tracking_id.lower())
        assert public.tracking_id == g.tracking_id
        assert public.status == GrievanceStatus.SUBMITTED

    @pytest.mark.parametrize("tracking_id", ["GRV-ZZZZ-ZZZZ", "not-a-tracking-id", ""])
    async def test_unknown_tracking_id(
        self,
        manager: GrievanceLifecycleManager,
        tracking_id: str,
    ) -> None:
        with pytest.raises(NotFoundError):
            await manager.track(tracking_id)


# -----------------------------------------------------------------------
# Comments
# -----------------------------------------------------------------------


class TestComments:
    async def test_comment_does_not_touch_grievance(
        self,
        manager: GrievanceLifecycleManager,
        clock: FakeClock,
        student: User,
        staff: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        clock.advance(hours=1)
        comment = await manager.add_comment(g.id, staff, "  We are checking with the exam cell.  ")

        assert comment.content == "We are checking with the exam cell."
        assert comment.created_at == clock.now
        after = await manager.get(g.id, student)
        assert after.updated_at == T0

    async def test_empty_comment_rejected(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        with pytest.raises(ValidationError):
            await manager.add_comment(g.id, student, "   ")

    async def test_internal_comments_hidden_from_students(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
        staff: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        await manager.add_comment(g.id, student, "Any update?")
        await manager.add_comment(g.id, staff, "Escalate to HoD", internal=True)

        assert [c.content for c in await manager.list_comments(g.id, student)] == ["Any update?"]
        assert len(await manager.list_comments(g.id, staff)) == 2

    async def test_student_cannot_post_internal_comment(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        with pytest.raises(AuthorizationError):
            await manager.add_comment(g.id, student, "secret", internal=True)

    async def test_comment_requires_visibility(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
        other_student: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        with pytest.raises(AuthorizationError):
            await manager.add_comment(g.id, other_student, "me too")


# -----------------------------------------------------------------------
# Assignments
# -----------------------------------------------------------------------


class TestAssignments:
    async def test_history_is_cumulative(
        self,
        manager: GrievanceLifecycleManager,
        clock: FakeClock,
        student: User,
        staff: User,
        faculty: User,
        admin: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        await manager.assign(g.id, staff.id, admin, department="Estate")
        clock.advance(hours=1)
        await manager.assign(g.id, faculty.id, admin, notes="Needs academic review")

        history = await manager.list_assignments(g.id, admin)
        assert [a.assigned_to for a in history] == [faculty.id, staff.id]
        assert all(a.assigned_by == admin.id for a in history)

    async def test_assignee_is_notified(
        self,
        manager: GrievanceLifecycleManager,
        notifications: NotificationService,
        student: User,
        staff: User,
        admin: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        await manager.assign(g.id, staff.id, admin)
        inbox = await notifications.list_for_user(staff.id)
        assert len(inbox) == 1
        assert inbox[0].title == "Grievance Assigned"
        assert g.tracking_id in inbox[0].message

    async def test_student_cannot_assign(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
        staff: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        with pytest.raises(AuthorizationError):
            await manager.assign(g.id, staff.id, student)

    async def test_unknown_assignee(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
        admin: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        with pytest.raises(NotFoundError):
            await manager.assign(g.id, "ghost", admin)

    async def test_missing_grievance(
        self,
        manager: GrievanceLifecycleManager,
        staff: User,
        admin: User,
    ) -> None:
        with pytest.raises(NotFoundError):
            await manager.assign("does-not-exist", staff.id, admin)


# -----------------------------------------------------------------------
# Attachments
# -----------------------------------------------------------------------


class TestAttachFile:
    async def test_attach_to_visible_grievance(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
        staff: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        record = await manager.attach_file(
            g.id,
            staff,
            Attachment(file_name="site.png", file_type="image/png", data=b"\x89PNG"),
        )
        assert record.uploaded_by == staff.id
        assert [f.id for f in await manager.list_files(g.id, student)] == [record.id]

    async def test_attach_requires_visibility(
        self,
        manager: GrievanceLifecycleManager,
        student: User,
        other_student: User,
    ) -> None:
        g = await manager.submit(_details(), student)
        with pytest.raises(AuthorizationError):
            await manager.attach_file(
                g.id,
                other_student,
                Attachment(file_name="x.pdf", file_type="application/pdf", data=b"x"),
            )
