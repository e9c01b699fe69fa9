"""Main API router combining all v1 route modules.

Aggregates all routers under the ``/api/v1`` prefix so the
FastAPI application only needs to include a single router.

Includes:
    * Health: liveness and readiness checks
    * Grievances: submission, tracking, lifecycle, comments, assignments, files
    * Dashboard: headline stats and administrator analytics
    * Notifications: the caller's inbox
    * Users: current user, profile, role administration
"""

from __future__ import annotations

from fastapi import APIRouter

from src.api.v1 import dashboard, grievances, health, notifications, users

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health.router)
api_router.include_router(grievances.router)
api_router.include_router(dashboard.router)
api_router.include_router(notifications.router)
api_router.include_router(users.router)
