"""Grievance cell service layer -- lifecycle, analytics, storage, and supporting services."""

from __future__ import annotations

from src.services.analytics import AnalyticsAggregator
from src.services.errors import (
    AuthorizationError,
    ConflictError,
    GrievanceError,
    NotFoundError,
    ValidationError,
)
from src.services.file_storage import LocalFileStorage, StoredFile
from src.services.lifecycle import GrievanceLifecycleManager
from src.services.notifications import NotificationService
from src.services.storage import (
    GrievanceStore,
    InMemoryGrievanceStore,
    RedisGrievanceStore,
    create_store,
)
from src.services.users import UserDirectory

__all__ = [
    "AnalyticsAggregator",
    "AuthorizationError",
    "ConflictError",
    "GrievanceError",
    "GrievanceLifecycleManager",
    "GrievanceStore",
    "InMemoryGrievanceStore",
    "LocalFileStorage",
    "NotFoundError",
    "NotificationService",
    "RedisGrievanceStore",
    "StoredFile",
    "UserDirectory",
    "ValidationError",
    "create_store",
]
