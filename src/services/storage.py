"""Persistence layer for grievance cell records.

Two interchangeable backends implement :class:`GrievanceStore`:

* :class:`InMemoryGrievanceStore` -- process-local dictionaries guarded
  by an :class:`asyncio.Lock`; the default for development and tests.
* :class:`RedisGrievanceStore` -- ``redis.asyncio`` with orjson-encoded
  records.  Tracking-id uniqueness is enforced with ``SET NX`` and record
  updates run as ``WATCH``/``MULTI`` optimistic transactions.

Read-modify-write on a single record always goes through
``update_grievance`` / ``update_notification``, which apply a pure
function to the current record atomically so concurrent requests on the
same grievance cannot lose updates.  There are no delete operations.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import defaultdict
from typing import TYPE_CHECKING, Protocol, TypeVar, runtime_checkable

import orjson
import structlog
from pydantic import BaseModel

from src.models.grievance import (
    Assignment,
    Comment,
    FileRecord,
    Grievance,
    Notification,
    User,
)
from src.services.errors import ConflictError, NotFoundError

if TYPE_CHECKING:
    from collections.abc import Callable

    from redis.asyncio import Redis

    from config.settings import Settings

logger = structlog.get_logger(__name__)

_M = TypeVar("_M", bound=BaseModel)


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class GrievanceStore(Protocol):
    """Async persistence interface consumed by the service layer.

    Every ``list_*`` method returns records newest first.
    """

    # -- users -----------------------------------------------------------------
    async def get_user(self, user_id: str) -> User | None: ...

    async def save_user(self, user: User) -> User: ...

    async def list_users(self) -> list[User]: ...

    # -- grievances ------------------------------------------------------------
    async def insert_grievance(self, grievance: Grievance) -> Grievance: ...

    async def get_grievance(self, grievance_id: str) -> Grievance | None: ...

    async def get_grievance_by_tracking_id(self, tracking_id: str) -> Grievance | None: ...

    async def list_grievances(self, owner_id: str | None = None) -> list[Grievance]: ...

    async def update_grievance(
        self,
        grievance_id: str,
        apply: Callable[[Grievance], Grievance],
    ) -> Grievance: ...

    # -- append-only streams ---------------------------------------------------
    async def insert_assignment(self, assignment: Assignment) -> Assignment: ...

    async def list_assignments(self, grievance_id: str) -> list[Assignment]: ...

    async def insert_comment(self, comment: Comment) -> Comment: ...

    async def list_comments(self, grievance_id: str) -> list[Comment]: ...

    async def insert_file(self, file: FileRecord) -> FileRecord: ...

    async def list_files(self, grievance_id: str) -> list[FileRecord]: ...

    # -- notifications ---------------------------------------------------------
    async def insert_notification(self, notification: Notification) -> Notification: ...

    async def get_notification(self, notification_id: str) -> Notification | None: ...

    async def list_notifications(self, user_id: str) -> list[Notification]: ...

    async def update_notification(
        self,
        notification_id: str,
        apply: Callable[[Notification], Notification],
    ) -> Notification: ...

    # -- lifecycle -------------------------------------------------------------
    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class InMemoryGrievanceStore:
    """Dictionary-backed store for a single process.

    All access is serialised through one :class:`asyncio.Lock`, which is
    enough for a single event loop.  Mutable records are copied on the way
    in and out so callers never hold a reference into the store.
    """

    __slots__ = (
        "_assignments",
        "_comments",
        "_files",
        "_grievances",
        "_lock",
        "_notifications",
        "_tracking_index",
        "_user_notifications",
        "_users",
    )

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._users: dict[str, User] = {}
        self._grievances: dict[str, Grievance] = {}
        self._tracking_index: dict[str, str] = {}
        self._assignments: defaultdict[str, list[Assignment]] = defaultdict(list)
        self._comments: defaultdict[str, list[Comment]] = defaultdict(list)
        self._files: defaultdict[str, list[FileRecord]] = defaultdict(list)
        self._notifications: dict[str, Notification] = {}
        self._user_notifications: defaultdict[str, list[str]] = defaultdict(list)

    # -- users -----------------------------------------------------------------

    async def get_user(self, user_id: str) -> User | None:
        async with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user is not None else None

    async def save_user(self, user: User) -> User:
        async with self._lock:
            self._users[user.id] = user.model_copy()
        return user

    async def list_users(self) -> list[User]:
        async with self._lock:
            return [u.model_copy() for u in reversed(self._users.values())]

    # -- grievances ------------------------------------------------------------

    async def insert_grievance(self, grievance: Grievance) -> Grievance:
        async with self._lock:
            if grievance.tracking_id in self._tracking_index:
                raise ConflictError(f"Tracking id '{grievance.tracking_id}' already exists.")
            if grievance.id in self._grievances:
                raise ConflictError(f"Grievance '{grievance.id}' already exists.")
            self._grievances[grievance.id] = grievance.model_copy()
            self._tracking_index[grievance.tracking_id] = grievance.id
        return grievance

    async def get_grievance(self, grievance_id: str) -> Grievance | None:
        async with self._lock:
            grievance = self._grievances.get(grievance_id)
            return grievance.model_copy() if grievance is not None else None

    async def get_grievance_by_tracking_id(self, tracking_id: str) -> Grievance | None:
        async with self._lock:
            grievance_id = self._tracking_index.get(tracking_id)
            if grievance_id is None:
                return None
            return self._grievances[grievance_id].model_copy()

    async def list_grievances(self, owner_id: str | None = None) -> list[Grievance]:
        async with self._lock:
            return [
                g.model_copy()
                for g in reversed(self._grievances.values())
                if owner_id is None or g.user_id == owner_id
            ]

    async def update_grievance(
        self,
        grievance_id: str,
        apply: Callable[[Grievance], Grievance],
    ) -> Grievance:
        async with self._lock:
            current = self._grievances.get(grievance_id)
            if current is None:
                raise NotFoundError(f"Grievance '{grievance_id}' not found.")
            updated = apply(current.model_copy())
            self._grievances[grievance_id] = updated.model_copy()
            return updated

    # -- append-only streams ---------------------------------------------------

    async def insert_assignment(self, assignment: Assignment) -> Assignment:
        async with self._lock:
            self._assignments[assignment.grievance_id].append(assignment)
        return assignment

    async def list_assignments(self, grievance_id: str) -> list[Assignment]:
        async with self._lock:
            return list(reversed(self._assignments.get(grievance_id, [])))

    async def insert_comment(self, comment: Comment) -> Comment:
        async with self._lock:
            self._comments[comment.grievance_id].append(comment)
        return comment

    async def list_comments(self, grievance_id: str) -> list[Comment]:
        async with self._lock:
            return list(reversed(self._comments.get(grievance_id, [])))

    async def insert_file(self, file: FileRecord) -> FileRecord:
        async with self._lock:
            self._files[file.grievance_id].append(file)
        return file

    async def list_files(self, grievance_id: str) -> list[FileRecord]:
        async with self._lock:
            return list(reversed(self._files.get(grievance_id, [])))

    # -- notifications ---------------------------------------------------------

    async def insert_notification(self, notification: Notification) -> Notification:
        async with self._lock:
            self._notifications[notification.id] = notification.model_copy()
            self._user_notifications[notification.user_id].append(notification.id)
        return notification

    async def get_notification(self, notification_id: str) -> Notification | None:
        async with self._lock:
            notification = self._notifications.get(notification_id)
            return notification.model_copy() if notification is not None else None

    async def list_notifications(self, user_id: str) -> list[Notification]:
        async with self._lock:
            return [
                self._notifications[nid].model_copy()
                for nid in reversed(self._user_notifications.get(user_id, []))
            ]

    async def update_notification(
        self,
        notification_id: str,
        apply: Callable[[Notification], Notification],
    ) -> Notification:
        async with self._lock:
            current = self._notifications.get(notification_id)
            if current is None:
                raise NotFoundError(f"Notification '{notification_id}' not found.")
            updated = apply(current.model_copy())
            self._notifications[notification_id] = updated.model_copy()
            return updated

    # -- lifecycle -------------------------------------------------------------

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    @property
    def grievance_count(self) -> int:
        return len(self._grievances)


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


def _dumps(record: BaseModel) -> bytes:
    return orjson.dumps(record.model_dump(mode="json"))


class RedisGrievanceStore:
    """Redis-backed store using ``redis.asyncio`` with connection pooling.

    Key layout (all under *namespace*)::

        user:<id>                      -> User JSON
        users                          -> list of user ids, newest first
        grievance:<id>                 -> Grievance JSON
        grievances                     -> list of grievance ids, newest first
        owner:<user_id>:grievances     -> list of grievance ids, newest first
        tracking:<tracking_id>         -> grievance id (SET NX)
        grievance:<id>:<stream>        -> list of JSON records, oldest first
        notification:<id>              -> Notification JSON
        user:<id>:notifications        -> list of notification ids, newest first
    """

    __slots__ = ("_namespace", "_pool", "_redis")

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        namespace: str = "grievance:",
        max_connections: int = 20,
        client: Redis | None = None,
    ) -> None:
        import redis.asyncio as aioredis

        self._namespace = namespace
        if client is not None:
            # Caller owns the connection; close() leaves it open.
            self._pool = None
            self._redis = client
            return
        self._pool = aioredis.ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            decode_responses=False,
        )
        self._redis = aioredis.Redis(connection_pool=self._pool)

    # -- Internal helpers ------------------------------------------------------

    def _key(self, *parts: str) -> str:
        return self._namespace + ":".join(parts)

    async def _get_model(self, key: str, model: type[_M]) -> _M | None:
        raw = await self._redis.get(key)
        if raw is None:
            return None
        return model.model_validate_json(raw)

    async def _get_many(self, keys: list[str], model: type[_M]) -> list[_M]:
        if not keys:
            return []
        raws = await self._redis.mget(keys)
        return [model.model_validate_json(raw) for raw in raws if raw is not None]

    async def _list_by_index(self, index_key: str, prefix: str, model: type[_M]) -> list[_M]:
        ids = await self._redis.lrange(index_key, 0, -1)
        return await self._get_many([self._key(prefix, i.decode()) for i in ids], model)

    async def _append(self, stream_key: str, record: BaseModel) -> None:
        await self._redis.rpush(stream_key, _dumps(record))

    async def _read_stream(self, stream_key: str, model: type[_M]) -> list[_M]:
        raws = await self._redis.lrange(stream_key, 0, -1)
        return [model.model_validate_json(raw) for raw in reversed(raws)]

    async def _update(
        self,
        key: str,
        model: type[_M],
        apply: Callable[[_M], _M],
        not_found: str,
    ) -> _M:
        from redis.exceptions import WatchError

        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        await pipe.reset()
                        raise NotFoundError(not_found)
                    updated = apply(model.model_validate_json(raw))
                    pipe.multi()
                    pipe.set(key, _dumps(updated))
                    await pipe.execute()
                    return updated
                except WatchError:
                    logger.debug("storage.redis.update_retry", key=key)
                    continue

    # -- users -----------------------------------------------------------------

    async def get_user(self, user_id: str) -> User | None:
        return await self._get_model(self._key("user", user_id), User)

    async def save_user(self, user: User) -> User:
        created = await self._redis.set(self._key("user", user.id), _dumps(user), nx=True)
        if created:
            await self._redis.lpush(self._key("users"), user.id)
        else:
            await self._redis.set(self._key("user", user.id), _dumps(user))
        return user

    async def list_users(self) -> list[User]:
        return await self._list_by_index(self._key("users"), "user", User)

    # -- grievances ------------------------------------------------------------

    async def insert_grievance(self, grievance: Grievance) -> Grievance:
        claimed = await self._redis.set(
            self._key("tracking", grievance.tracking_id),
            grievance.id,
            nx=True,
        )
        if not claimed:
            raise ConflictError(f"Tracking id '{grievance.tracking_id}' already exists.")

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key("grievance", grievance.id), _dumps(grievance))
            pipe.lpush(self._key("grievances"), grievance.id)
            if grievance.user_id is not None:
                pipe.lpush(self._key("owner", grievance.user_id, "grievances"), grievance.id)
            await pipe.execute()
        return grievance

    async def get_grievance(self, grievance_id: str) -> Grievance | None:
        return await self._get_model(self._key("grievance", grievance_id), Grievance)

    async def get_grievance_by_tracking_id(self, tracking_id: str) -> Grievance | None:
        grievance_id = await self._redis.get(self._key("tracking", tracking_id))
        if grievance_id is None:
            return None
        return await self.get_grievance(grievance_id.decode())

    async def list_grievances(self, owner_id: str | None = None) -> list[Grievance]:
        if owner_id is None:
            index_key = self._key("grievances")
        else:
            index_key = self._key("owner", owner_id, "grievances")
        return await self._list_by_index(index_key, "grievance", Grievance)

    async def update_grievance(
        self,
        grievance_id: str,
        apply: Callable[[Grievance], Grievance],
    ) -> Grievance:
        return await self._update(
            self._key("grievance", grievance_id),
            Grievance,
            apply,
            f"Grievance '{grievance_id}' not found.",
        )

    # -- append-only streams ---------------------------------------------------

    async def insert_assignment(self, assignment: Assignment) -> Assignment:
        await self._append(self._key("grievance", assignment.grievance_id, "assignments"), assignment)
        return assignment

    async def list_assignments(self, grievance_id: str) -> list[Assignment]:
        return await self._read_stream(self._key("grievance", grievance_id, "assignments"), Assignment)

    async def insert_comment(self, comment: Comment) -> Comment:
        await self._append(self._key("grievance", comment.grievance_id, "comments"), comment)
        return comment

    async def list_comments(self, grievance_id: str) -> list[Comment]:
        return await self._read_stream(self._key("grievance", grievance_id, "comments"), Comment)

    async def insert_file(self, file: FileRecord) -> FileRecord:
        await self._append(self._key("grievance", file.grievance_id, "files"), file)
        return file

    async def list_files(self, grievance_id: str) -> list[FileRecord]:
        return await self._read_stream(self._key("grievance", grievance_id, "files"), FileRecord)

    # -- notifications ---------------------------------------------------------

    async def insert_notification(self, notification: Notification) -> Notification:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key("notification", notification.id), _dumps(notification))
            pipe.lpush(self._key("user", notification.user_id, "notifications"), notification.id)
            await pipe.execute()
        return notification

    async def get_notification(self, notification_id: str) -> Notification | None:
        return await self._get_model(self._key("notification", notification_id), Notification)

    async def list_notifications(self, user_id: str) -> list[Notification]:
        return await self._list_by_index(
            self._key("user", user_id, "notifications"),
            "notification",
            Notification,
        )

    async def update_notification(
        self,
        notification_id: str,
        apply: Callable[[Notification], Notification],
    ) -> Notification:
        return await self._update(
            self._key("notification", notification_id),
            Notification,
            apply,
            f"Notification '{notification_id}' not found.",
        )

    # -- lifecycle -------------------------------------------------------------

    async def ping(self) -> bool:
        """Return *True* if the Redis server is reachable."""
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False

    async def close(self) -> None:
        if self._pool is None:
            return
        with contextlib.suppress(Exception):
            await self._redis.aclose()
            await self._pool.aclose()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_store(settings: Settings) -> GrievanceStore:
    """Build the backend named by ``settings.storage_backend``."""
    if settings.storage_backend == "redis":
        logger.info("storage.backend_selected", backend="redis", namespace=settings.redis_namespace)
        return RedisGrievanceStore(settings.redis_url, namespace=settings.redis_namespace)
    logger.info("storage.backend_selected", backend="memory")
    return InMemoryGrievanceStore()
