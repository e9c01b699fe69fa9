"""Grievance cell FastAPI application entry point.

Creates the FastAPI app, configures middleware and error translation,
includes routers, and manages the lifecycle of the backend services
(store, file storage, notifications, users, lifecycle manager, analytics).
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from config.settings import settings
from src.api.router import api_router
from src.middleware.request_context import RequestContextMiddleware
from src.models.enums import UserRole
from src.services.errors import GrievanceError

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping().get(settings.log_level.upper(), logging.INFO),
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup and shutdown of the grievance cell services.

    On startup:
      1. Build the store selected by ``settings.storage_backend``
      2. Build file storage, notification service and user directory
      3. Build the lifecycle manager and analytics aggregator
      4. Seed the development user outside production
      5. Store everything on ``app.state``

    On shutdown:
      - Close the store's connections.
    """
    _configure_logging()
    logger.info(
        "app.startup",
        env=settings.env,
        storage_backend=settings.storage_backend,
    )

    app.state.start_time = time.time()

    # -- 1. Store -----------------------------------------------------------
    from src.services.storage import create_store

    store = create_store(settings)
    app.state.store = store
    if not await store.ping():
        logger.warning("app.store_unreachable", backend=settings.storage_backend)

    # -- 2. Supporting services ---------------------------------------------
    from src.services.file_storage import LocalFileStorage
    from src.services.notifications import NotificationService
    from src.services.users import UserDirectory

    file_storage = LocalFileStorage(
        settings.upload_dir,
        max_bytes=settings.max_upload_bytes,
        allowed_types=settings.allowed_upload_types,
    )
    notifications = NotificationService(store)
    users = UserDirectory(store)
    app.state.file_storage = file_storage
    app.state.notifications = notifications
    app.state.users = users
    logger.info("app.supporting_services_initialised", upload_dir=settings.upload_dir)

    # -- 3. Lifecycle manager and analytics ---------------------------------
    from src.services.analytics import AnalyticsAggregator
    from src.services.lifecycle import GrievanceLifecycleManager

    app.state.lifecycle = GrievanceLifecycleManager(
        store,
        notifications,
        file_storage,
        max_tracking_attempts=settings.tracking_id_max_attempts,
    )
    app.state.analytics = AnalyticsAggregator(store)
    logger.info("app.lifecycle_initialised")

    # -- 4. Development identity --------------------------------------------
    if not settings.is_production:
        await users.ensure_user(settings.dev_user_id, role=UserRole(settings.dev_user_role))
        logger.info("app.dev_user_seeded", user_id=settings.dev_user_id, role=settings.dev_user_role)

    logger.info("app.startup_complete")

    yield

    # -- Shutdown -----------------------------------------------------------
    logger.info("app.shutdown_start")
    await store.close()
    logger.info("app.shutdown_complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Grievance Cell API",
    description=(
        "College grievance cell: submit complaints with attachments, track them "
        "anonymously by tracking id, and let staff triage, assign, comment on "
        "and resolve them against priority-based SLA deadlines."
    ),
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# -- CORS middleware --------------------------------------------------------
if settings.is_production:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["Content-Type", "Authorization", "X-User-Id", "X-Request-Id"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173", "http://127.0.0.1:8000"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS", "HEAD"],
        allow_headers=["Content-Type", "Accept", "Authorization", "X-User-Id", "X-Request-Id"],
    )

app.add_middleware(RequestContextMiddleware)


# -- Error translation -------------------------------------------------------


@app.exception_handler(GrievanceError)
async def grievance_error_handler(request: Request, exc: GrievanceError) -> ORJSONResponse:
    """Map service-layer failures onto their HTTP status codes."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "api.error",
        error_type=type(exc).__name__,
        status_code=exc.status_code,
        detail=exc.message,
        path=request.url.path,
    )
    return ORJSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> ORJSONResponse:
    logger.error("api.unhandled_error", path=request.url.path, exc_info=exc)
    return ORJSONResponse(status_code=500, content={"detail": "Internal server error"})


# -- Include routers -------------------------------------------------------
app.include_router(api_router)


@app.get("/api", response_class=ORJSONResponse)
async def api_info() -> dict:
    """API information endpoint."""
    return {
        "name": "Grievance Cell API",
        "version": app.version,
        "docs": "/docs",
        "health": "/api/v1/health",
        "endpoints": {
            "track": "/api/v1/grievances/track/{tracking_id}",
            "grievances": "/api/v1/grievances",
            "dashboard": "/api/v1/dashboard/stats",
            "analytics": "/api/v1/analytics",
            "notifications": "/api/v1/notifications",
            "users": "/api/v1/users",
        },
    }
