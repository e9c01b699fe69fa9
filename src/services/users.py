"""User directory: role and profile records for authenticated callers.

Authentication itself happens upstream; this service only records the
users it has seen, their role, and their profile fields.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from src.models.enums import UserRole
from src.models.grievance import User
from src.services import permissions
from src.services.errors import NotFoundError, ValidationError
from src.services.permissions import Action

if TYPE_CHECKING:
    from collections.abc import Callable

    from src.services.storage import GrievanceStore

logger = structlog.get_logger(__name__)


class UserDirectory:
    __slots__ = ("_clock", "_store")

    def __init__(
        self,
        store: GrievanceStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))

    async def ensure_user(
        self,
        user_id: str,
        *,
        email: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        role: UserRole | None = None,
    ) -> User:
        """Return the user, creating a student record on first sight.

        Profile fields supplied by the identity provider are refreshed on
        later calls.  *role* only applies when the user is created.
        """
        existing = await self._store.get_user(user_id)
        now = self._clock()
        if existing is None:
            user = User(
                id=user_id,
                email=email,
                first_name=first_name,
                last_name=last_name,
                role=role or UserRole.STUDENT,
                created_at=now,
                updated_at=now,
            )
            await self._store.save_user(user)
            logger.info("users.created", user_id=user_id, role=str(user.role))
            return user

        changes = {
            k: v
            for k, v in {"email": email, "first_name": first_name, "last_name": last_name}.items()
            if v is not None and getattr(existing, k) != v
        }
        if not changes:
            return existing
        user = existing.model_copy(update={**changes, "updated_at": now})
        await self._store.save_user(user)
        return user

    async def get_user(self, user_id: str) -> User:
        user = await self._store.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User '{user_id}' not found.")
        return user

    async def list_users(self, actor: User) -> list[User]:
        permissions.require(actor, Action.MANAGE_USERS)
        return await self._store.list_users()

    async def update_role(self, user_id: str, role: str, actor: User) -> User:
        permissions.require(actor, Action.MANAGE_USERS)
        try:
            new_role = UserRole(role)
        except ValueError:
            raise ValidationError(
                f"Invalid role '{role}'. Valid roles: {[r.value for r in UserRole]}"
            ) from None

        user = await self.get_user(user_id)
        updated = user.model_copy(update={"role": new_role, "updated_at": self._clock()})
        await self._store.save_user(updated)
        logger.info(
            "users.role_updated",
            user_id=user_id,
            old_role=str(user.role),
            new_role=str(new_role),
            actor_id=actor.id,
        )
        return updated

    async def update_profile(
        self,
        user_id: str,
        *,
        department: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> User:
        user = await self.get_user(user_id)
        changes = {
            k: v
            for k, v in {
                "department": department,
                "first_name": first_name,
                "last_name": last_name,
            }.items()
            if v is not None
        }
        if not changes:
            return user
        updated = user.model_copy(update={**changes, "updated_at": self._clock()})
        await self._store.save_user(updated)
        return updated
