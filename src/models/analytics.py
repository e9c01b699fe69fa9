"""Aggregate views computed over the grievance collection."""

from __future__ import annotations

from pydantic import BaseModel, Field


class DashboardStats(BaseModel):
    """Headline counts shown on the dashboard."""

    total: int = 0
    pending: int = 0
    resolved: int = 0
    overdue: int = 0


class MonthlyTrend(BaseModel):
    """Submissions and resolutions falling in one calendar month."""

    month: str
    submitted: int = 0
    resolved: int = 0


class AnalyticsReport(BaseModel):
    """Administrator analytics: distributions, SLA compliance and trends."""

    total_grievances: int = 0
    avg_resolution_time_hours: float = 0.0
    sla_compliance_percent: int = 0
    category_breakdown: dict[str, int] = Field(default_factory=dict)
    priority_distribution: dict[str, int] = Field(default_factory=dict)
    status_distribution: dict[str, int] = Field(default_factory=dict)
    monthly_trends: list[MonthlyTrend] = Field(default_factory=list)
