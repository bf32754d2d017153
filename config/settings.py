"""ReliefLine configuration.

Bot and backend options read ``RELIEFLINE_*`` variables. Shared
infrastructure (Redis, WhatsApp credentials, logging, admin key) keeps
the plain variable names operators already set for other services.
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
    """Central configuration for the ReliefLine bot service.

    Environment variables are loaded from a ``.env`` file when present.
    App-specific keys are prefixed with ``RELIEFLINE_``; infra keys
    use their standard names (configured via ``validation_alias``).
    """

    model_config = SettingsConfigDict(
        env_prefix="RELIEFLINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"

    # ── Disaster management backend ────────────────────────────────────
    backend_api_url: str = Field(default="http://localhost:8000", validation_alias="BACKEND_API_URL")
    backend_timeout_seconds: float = 15.0
    backend_max_attempts: int = Field(default=3, ge=1)

    # ── Redis ──────────────────────────────────────────────────────────
    # Empty string keeps all conversation state in process memory.
    redis_url: str = Field(default="", validation_alias="REDIS_URL")

    # ── State TTLs (seconds) ───────────────────────────────────────────
    session_ttl_seconds: int = 86_400  # 24 hours
    conversation_ttl_seconds: int = 1_800  # 30 minutes idle

    # ── WhatsApp Cloud API ─────────────────────────────────────────────
    whatsapp_phone_number_id: str = Field(default="", validation_alias="WHATSAPP_PHONE_NUMBER_ID")
    whatsapp_access_token: str = Field(default="", validation_alias="WHATSAPP_ACCESS_TOKEN")
    whatsapp_verify_token: str = Field(default="", validation_alias="WHATSAPP_VERIFY_TOKEN")
    whatsapp_app_secret: str = Field(default="", validation_alias="WHATSAPP_APP_SECRET")

    # ── Disaster monitoring ────────────────────────────────────────────
    monitor_interval_seconds: float = 30.0
    monitor_duration_seconds: float = 3_600.0  # 1 hour

    # ── Admin API Key ──────────────────────────────────────────────────
    admin_api_key: str = Field(default="", validation_alias="ADMIN_API_KEY")

    # ── CORS (production) ──────────────────────────────────────────────
    cors_origins: str = ""  # comma-separated

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


# Module-level singleton; import ``settings`` everywhere.
settings = Settings()
