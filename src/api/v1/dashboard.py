"""Dashboard statistics and administrator analytics endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from src.middleware.auth import get_current_user
from src.models.analytics import AnalyticsReport, DashboardStats
from src.models.grievance import User
from src.services import permissions
from src.services.analytics import AnalyticsAggregator
from src.services.permissions import Action

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(tags=["dashboard"])


def _aggregator(request: Request) -> AnalyticsAggregator:
    aggregator = getattr(request.app.state, "analytics", None)
    if aggregator is None:
        raise HTTPException(status_code=503, detail="Analytics not available")
    return aggregator


@router.get("/dashboard/stats", response_model=DashboardStats)
async def dashboard_stats(
    request: Request,
    user: User = Depends(get_current_user),
) -> DashboardStats:
    """Total, pending, resolved and overdue counts.

    Students see counts over their own grievances; everyone else sees
    the whole collection.
    """
    return await _aggregator(request).dashboard_stats(user.id, user.role)


@router.get("/analytics", response_model=AnalyticsReport)
async def analytics(
    request: Request,
    user: User = Depends(get_current_user),
) -> AnalyticsReport:
    """Distributions, SLA compliance and monthly trends (administrators only)."""
    permissions.require(user, Action.VIEW_ANALYTICS)
    return await _aggregator(request).analytics()
