"""Dashboard and analytics aggregation over the grievance collection.

Every call scans the full collection and recomputes from scratch; there
is no incremental state to drift out of sync.  Results depend on the
clock at call time (overdue counts, the trailing six-month window), so
two calls need not agree.
"""

from __future__ import annotations

import math
from collections import Counter
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Final

import structlog

from src.models.analytics import AnalyticsReport, DashboardStats, MonthlyTrend
from src.models.enums import UserRole
from src.services.sla import is_overdue

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from src.models.grievance import Grievance
    from src.services.storage import GrievanceStore

logger = structlog.get_logger(__name__)

TREND_MONTHS: Final[int] = 6


def _months_back(today: date, count: int) -> list[tuple[int, int]]:
    """``(year, month)`` pairs for the trailing *count* months, oldest first."""
    months: list[tuple[int, int]] = []
    for offset in range(count - 1, -1, -1):
        index = today.year * 12 + (today.month - 1) - offset
        months.append((index // 12, index % 12 + 1))
    return months


def _month_key(moment: datetime) -> tuple[int, int]:
    moment = moment.astimezone(UTC)
    return moment.year, moment.month


def compute_dashboard_stats(grievances: Sequence[Grievance], now: datetime) -> DashboardStats:
    pending = [g for g in grievances if g.is_pending]
    return DashboardStats(
        total=len(grievances),
        pending=len(pending),
        resolved=len(grievances) - len(pending),
        overdue=sum(1 for g in pending if is_overdue(g, now)),
    )


def compute_analytics(grievances: Sequence[Grievance], now: datetime) -> AnalyticsReport:
    category_breakdown = Counter(str(g.category) for g in grievances)
    priority_distribution = Counter(str(g.priority) for g in grievances)
    status_distribution = Counter(str(g.status) for g in grievances)

    # Mean resolution time over grievances that have been resolved at least once
    resolution_hours = [
        (g.resolved_at - g.created_at).total_seconds() / 3600
        for g in grievances
        if g.resolved_at is not None
    ]
    avg_resolution = (
        round(sum(resolution_hours) / len(resolution_hours), 2) if resolution_hours else 0.0
    )

    # SLA compliance among resolved grievances that carry a deadline
    with_sla = [
        g for g in grievances if g.sla_deadline is not None and g.resolved_at is not None
    ]
    compliant = sum(1 for g in with_sla if g.resolved_at <= g.sla_deadline)
    sla_compliance = math.floor(compliant / len(with_sla) * 100 + 0.5) if with_sla else 0

    # Trailing six calendar months, current month inclusive
    submitted_by_month = Counter(_month_key(g.created_at) for g in grievances)
    resolved_by_month = Counter(
        _month_key(g.resolved_at) for g in grievances if g.resolved_at is not None
    )
    monthly_trends = [
        MonthlyTrend(
            month=date(year, month, 1).strftime("%b"),
            submitted=submitted_by_month.get((year, month), 0),
            resolved=resolved_by_month.get((year, month), 0),
        )
        for year, month in _months_back(now.astimezone(UTC).date(), TREND_MONTHS)
    ]

    return AnalyticsReport(
        total_grievances=len(grievances),
        avg_resolution_time_hours=avg_resolution,
        sla_compliance_percent=sla_compliance,
        category_breakdown=dict(category_breakdown),
        priority_distribution=dict(priority_distribution),
        status_distribution=dict(status_distribution),
        monthly_trends=monthly_trends,
    )


class AnalyticsAggregator:
    """Read-only statistics over whatever the store currently holds."""

    __slots__ = ("_clock", "_store")

    def __init__(
        self,
        store: GrievanceStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))

    async def dashboard_stats(
        self,
        scope_user_id: str | None = None,
        scope_role: str | None = None,
    ) -> DashboardStats:
        """Headline counts; students only see their own grievances."""
        if scope_user_id is not None and scope_role == UserRole.STUDENT:
            grievances = await self._store.list_grievances(owner_id=scope_user_id)
        else:
            grievances = await self._store.list_grievances()

        stats = compute_dashboard_stats(grievances, self._clock())
        logger.info(
            "analytics.dashboard_stats",
            scope_user_id=scope_user_id,
            scope_role=scope_role,
            total=stats.total,
            overdue=stats.overdue,
        )
        return stats

    async def analytics(self) -> AnalyticsReport:
        grievances = await self._store.list_grievances()
        report = compute_analytics(grievances, self._clock())
        logger.info(
            "analytics.report",
            total=report.total_grievances,
            sla_compliance_percent=report.sla_compliance_percent,
        )
        return report
