from src.models.analytics import AnalyticsReport, DashboardStats, MonthlyTrend
from src.models.enums import (
    STAFF_ROLES,
    TERMINAL_STATUSES,
    GrievanceCategory,
    GrievancePriority,
    GrievanceStatus,
    UserRole,
)
from src.models.grievance import (
    Assignment,
    Attachment,
    Comment,
    FileRecord,
    Grievance,
    GrievanceDetails,
    Notification,
    PublicGrievanceStatus,
    User,
)

__all__ = [
    "STAFF_ROLES",
    "TERMINAL_STATUSES",
    "AnalyticsReport",
    "Assignment",
    "Attachment",
    "Comment",
    "DashboardStats",
    "FileRecord",
    "Grievance",
    "GrievanceCategory",
    "GrievanceDetails",
    "GrievancePriority",
    "GrievanceStatus",
    "MonthlyTrend",
    "Notification",
    "PublicGrievanceStatus",
    "User",
    "UserRole",
]
