"""Local disk storage for grievance attachments.

Accepts raw upload bytes, validates type and size, and writes them under
the configured upload directory with a random file name.  Only the
returned path is persisted alongside the file's metadata; the original
file name is kept in the metadata record, never on disk.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

import structlog

from src.services.errors import ValidationError

logger = structlog.get_logger(__name__)


@dataclass(slots=True, frozen=True)
class StoredFile:
    """Location and size of a file written by :class:`LocalFileStorage`."""

    path: str
    size: int


class LocalFileStorage:
    """Writes attachments to a directory on the local filesystem.

    Parameters
    ----------
    upload_dir:
        Directory to write into; created on first use.
    max_bytes:
        Largest accepted payload.
    allowed_types:
        Accepted MIME types (``application/pdf``, ``image/png``, ...).
    """

    __slots__ = ("_allowed_types", "_max_bytes", "_upload_dir")

    def __init__(
        self,
        upload_dir: str | Path,
        *,
        max_bytes: int = 10 * 1024 * 1024,
        allowed_types: list[str] | frozenset[str] | None = None,
    ) -> None:
        self._upload_dir = Path(upload_dir)
        self._max_bytes = max_bytes
        self._allowed_types = frozenset(allowed_types or ())

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def validate(self, file_type: str, size: int) -> None:
        if self._allowed_types and file_type not in self._allowed_types:
            raise ValidationError(
                f"Invalid file type '{file_type}'. Allowed types: {sorted(self._allowed_types)}"
            )
        if size == 0:
            raise ValidationError("Empty file.")
        if size > self._max_bytes:
            raise ValidationError(
                f"File too large. Maximum size is {self._max_bytes // (1024 * 1024)} MB."
            )

    async def save(self, data: bytes, file_name: str, file_type: str) -> StoredFile:
        """Validate and write *data*; return where it was stored."""
        self.validate(file_type, len(data))

        suffix = Path(file_name).suffix.lower()[:10]
        target = self._upload_dir / f"{uuid4().hex}{suffix}"

        def _write() -> None:
            self._upload_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.info(
            "file_storage.saved",
            path=str(target),
            file_type=file_type,
            size=len(data),
        )
        return StoredFile(path=str(target), size=len(data))
