"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. Every key uses
the ``GRIEVANCE_`` prefix (``GRIEVANCE_STORAGE_BACKEND=redis``) and may
also be supplied through a ``.env`` file.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the grievance cell service."""

    model_config = SettingsConfigDict(
        env_prefix="GRIEVANCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"

    # ── API ────────────────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = ""

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    # ── Storage ────────────────────────────────────────────────────────
    storage_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_namespace: str = "grievance:"

    # ── Uploads ────────────────────────────────────────────────────────
    upload_dir: str = "uploads"
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, gt=0)  # 10 MB
    allowed_upload_types: list[str] = [
        "application/pdf",
        "image/jpeg",
        "image/jpg",
        "image/png",
        "video/mp4",
    ]
    max_files_per_submission: int = Field(default=5, ge=0)

    # ── Lifecycle ──────────────────────────────────────────────────────
    tracking_id_max_attempts: int = Field(default=5, ge=1)

    # ── Development identity ───────────────────────────────────────────
    # Used only outside production when no identity header is present.
    dev_user_id: str = "dev-user"
    dev_user_role: Literal["student", "faculty", "staff", "administrator"] = "administrator"

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Module-level singleton; import ``settings`` everywhere.
settings = Settings()
