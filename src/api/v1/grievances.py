"""Grievance endpoints for the grievance cell API v1.

Covers submission (multipart form with optional attachments), anonymous
tracking, listing, status and priority changes, and the comment,
assignment and attachment streams of a single grievance.

Service-layer failures propagate as
:class:`~src.services.errors.GrievanceError` subclasses and are turned
into HTTP responses by the application's exception handler.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from pydantic import BaseModel, Field

from config.settings import settings
from src.middleware.auth import get_current_user
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
from src.services.lifecycle import GrievanceLifecycleManager

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/grievances", tags=["grievances"])


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class StatusUpdateRequest(BaseModel):
    status: str = Field(..., description="submitted, under_review, assigned, in_progress, resolved, closed")


class PriorityUpdateRequest(BaseModel):
    priority: str = Field(..., description="low, medium, high, critical")


class CommentCreateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    is_internal: bool = False


class AssignmentCreateRequest(BaseModel):
    assigned_to: str = Field(..., min_length=1, description="User id of the assignee")
    department: str | None = Field(default=None, max_length=200)
    deadline: datetime | None = None
    notes: str | None = Field(default=None, max_length=2000)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _lifecycle(request: Request) -> GrievanceLifecycleManager:
    lifecycle = getattr(request.app.state, "lifecycle", None)
    if lifecycle is None:
        raise HTTPException(status_code=503, detail="Grievance service not available")
    return lifecycle


def _upload_limit(request: Request) -> int:
    file_storage = getattr(request.app.state, "file_storage", None)
    if file_storage is None:
        raise HTTPException(status_code=503, detail="File storage not available")
    return file_storage.max_bytes


async def _read_upload(upload: UploadFile, max_bytes: int) -> Attachment:
    """Read an upload with streaming size enforcement."""
    size = 0
    chunks: list[bytes] = []
    while chunk := await upload.read(64 * 1024):  # 64 KB chunks
        size += len(chunk)
        if size > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File too large. Maximum size is {max_bytes // (1024 * 1024)} MB.",
            )
        chunks.append(chunk)

    return Attachment(
        file_name=upload.filename or "upload",
        file_type=upload.content_type or "application/octet-stream",
        data=b"".join(chunks),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/track/{tracking_id}", response_model=PublicGrievanceStatus)
async def track_grievance(tracking_id: str, request: Request) -> PublicGrievanceStatus:
    """Public status lookup by tracking id; no identity required."""
    return await _lifecycle(request).track(tracking_id)


@router.post("", response_model=Grievance, status_code=201)
async def submit_grievance(
    request: Request,
    title: str = Form(..., min_length=1, max_length=300),
    description: str = Form(..., min_length=1, max_length=10_000),
    category: str = Form(...),
    is_anonymous: bool = Form(default=False),
    is_confidential: bool = Form(default=False),
    files: list[UploadFile] = File(default=[]),
    user: User = Depends(get_current_user),
) -> Grievance:
    """Submit a new grievance with up to ``max_files_per_submission`` attachments.

    Priority and SLA deadline are derived from the category; the response
    carries the tracking id the submitter can use for anonymous lookup.
    """
    lifecycle = _lifecycle(request)

    if len(files) > settings.max_files_per_submission:
        raise HTTPException(
            status_code=400,
            detail=f"At most {settings.max_files_per_submission} files may be attached.",
        )

    max_bytes = _upload_limit(request)
    attachments = [await _read_upload(f, max_bytes) for f in files]
    details = GrievanceDetails(
        title=title,
        description=description,
        category=category,
        is_anonymous=is_anonymous,
        is_confidential=is_confidential,
    )
    return await lifecycle.submit(details, user, attachments)


@router.get("/my", response_model=list[Grievance])
async def my_grievances(
    request: Request,
    user: User = Depends(get_current_user),
) -> list[Grievance]:
    return await _lifecycle(request).list_for_owner(user)


@router.get("/all", response_model=list[Grievance])
async def all_grievances(
    request: Request,
    user: User = Depends(get_current_user),
) -> list[Grievance]:
    """All grievances visible to staff; confidential ones to administrators only."""
    return await _lifecycle(request).list_all(user)


@router.get("/{grievance_id}", response_model=Grievance)
async def get_grievance(
    grievance_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> Grievance:
    return await _lifecycle(request).get(grievance_id, user)


@router.patch("/{grievance_id}/status", response_model=Grievance)
async def update_status(
    grievance_id: str,
    body: StatusUpdateRequest,
    request: Request,
    user: User = Depends(get_current_user),
) -> Grievance:
    return await _lifecycle(request).set_status(grievance_id, body.status, user)


@router.patch("/{grievance_id}/priority", response_model=Grievance)
async def update_priority(
    grievance_id: str,
    body: PriorityUpdateRequest,
    request: Request,
    user: User = Depends(get_current_user),
) -> Grievance:
    """Re-prioritise a grievance; the SLA deadline restarts from now."""
    return await _lifecycle(request).set_priority(grievance_id, body.priority, user)


@router.get("/{grievance_id}/comments", response_model=list[Comment])
async def list_comments(
    grievance_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> list[Comment]:
    return await _lifecycle(request).list_comments(grievance_id, user)


@router.post("/{grievance_id}/comments", response_model=Comment, status_code=201)
async def add_comment(
    grievance_id: str,
    body: CommentCreateRequest,
    request: Request,
    user: User = Depends(get_current_user),
) -> Comment:
    return await _lifecycle(request).add_comment(
        grievance_id,
        user,
        body.content,
        internal=body.is_internal,
    )


@router.get("/{grievance_id}/assignments", response_model=list[Assignment])
async def list_assignments(
    grievance_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> list[Assignment]:
    return await _lifecycle(request).list_assignments(grievance_id, user)


@router.post("/{grievance_id}/assignments", response_model=Assignment, status_code=201)
async def create_assignment(
    grievance_id: str,
    body: AssignmentCreateRequest,
    request: Request,
    user: User = Depends(get_current_user),
) -> Assignment:
    return await _lifecycle(request).assign(
        grievance_id,
        body.assigned_to,
        user,
        department=body.department,
        deadline=body.deadline,
        notes=body.notes,
    )


@router.get("/{grievance_id}/files", response_model=list[FileRecord])
async def list_files(
    grievance_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> list[FileRecord]:
    return await _lifecycle(request).list_files(grievance_id, user)


@router.post("/{grievance_id}/files", response_model=FileRecord, status_code=201)
async def upload_file(
    grievance_id: str,
    request: Request,
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
) -> FileRecord:
    attachment = await _read_upload(file, _upload_limit(request))
    return await _lifecycle(request).attach_file(grievance_id, user, attachment)
