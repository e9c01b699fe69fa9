"""Current-user and user administration endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from src.middleware.auth import get_current_user
from src.models.grievance import User
from src.services.users import UserDirectory

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(tags=["users"])


class RoleUpdateRequest(BaseModel):
    role: str = Field(..., description="student, faculty, staff, administrator")


class ProfileUpdateRequest(BaseModel):
    department: str | None = Field(default=None, max_length=200)
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)


def _users(request: Request) -> UserDirectory:
    users = getattr(request.app.state, "users", None)
    if users is None:
        raise HTTPException(status_code=503, detail="User directory not available")
    return users


@router.get("/auth/user", response_model=User)
async def current_user(user: User = Depends(get_current_user)) -> User:
    return user


@router.get("/users", response_model=list[User])
async def list_users(
    request: Request,
    user: User = Depends(get_current_user),
) -> list[User]:
    return await _users(request).list_users(user)


@router.patch("/users/me", response_model=User)
async def update_my_profile(
    body: ProfileUpdateRequest,
    request: Request,
    user: User = Depends(get_current_user),
) -> User:
    return await _users(request).update_profile(
        user.id,
        department=body.department,
        first_name=body.first_name,
        last_name=body.last_name,
    )


@router.patch("/users/{user_id}/role", response_model=User)
async def update_user_role(
    user_id: str,
    body: RoleUpdateRequest,
    request: Request,
    user: User = Depends(get_current_user),
) -> User:
    return await _users(request).update_role(user_id, body.role, user)
