"""Shared fixtures: a controllable clock, an in-memory store, and one user per role."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from src.models.enums import UserRole
from src.models.grievance import User
from src.services.file_storage import LocalFileStorage
from src.services.lifecycle import GrievanceLifecycleManager
from src.services.notifications import NotificationService
from src.services.storage import InMemoryGrievanceStore

T0 = datetime(2026, 3, 15, 9, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryGrievanceStore:
    return InMemoryGrievanceStore()


@pytest.fixture
def student() -> User:
    return User(id="stu-1", email="asha@college.edu", first_name="Asha", role=UserRole.STUDENT)


@pytest.fixture
def other_student() -> User:
    return User(id="stu-2", email="ravi@college.edu", first_name="Ravi", role=UserRole.STUDENT)


@pytest.fixture
def staff() -> User:
    return User(id="staff-1", email="office@college.edu", role=UserRole.STAFF, department="Estate")


@pytest.fixture
def faculty() -> User:
    return User(id="fac-1", email="prof@college.edu", role=UserRole.FACULTY, department="Physics")


@pytest.fixture
def admin() -> User:
    return User(id="admin-1", email="registrar@college.edu", role=UserRole.ADMINISTRATOR)


@pytest.fixture
async def seeded_store(
    store: InMemoryGrievanceStore,
    student: User,
    other_student: User,
    staff: User,
    faculty: User,
    admin: User,
) -> InMemoryGrievanceStore:
    for user in (student, other_student, staff, faculty, admin):
        await store.save_user(user)
    return store


@pytest.fixture
def file_storage(tmp_path: Path) -> LocalFileStorage:
    return LocalFileStorage(
        tmp_path / "uploads",
        max_bytes=1024,
        allowed_types=["application/pdf", "image/png"],
    )


@pytest.fixture
def notifications(seeded_store: InMemoryGrievanceStore, clock: FakeClock) -> NotificationService:
    return NotificationService(seeded_store, clock=clock)


@pytest.fixture
def manager(
    seeded_store: InMemoryGrievanceStore,
    notifications: NotificationService,
    file_storage: LocalFileStorage,
    clock: FakeClock,
) -> GrievanceLifecycleManager:
    return GrievanceLifecycleManager(
        seeded_store,
        notifications,
        file_storage,
        clock=clock,
    )
