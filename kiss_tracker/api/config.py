"""Deployment settings for the API layer."""
from __future__ import annotations

import logging
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..config import (
    DEFAULT_DATA_DIR,
    HEARTBEAT_INTERVAL_SECONDS,
    LOG_LEVEL,
    SUBSCRIBER_QUEUE_SIZE,
)

logger = logging.getLogger(__name__)


class ApiSettings(BaseSettings):
    """Immutable settings loaded from environment / .env file.

    ``PORT``, ``FRONTEND_URL`` and ``DATABASE_URL`` are also honoured without
    the ``KISS_TRACKER_`` prefix, since hosting platforms inject them bare.
    """

    host: str = "0.0.0.0"
    port: int = Field(8000, validation_alias=AliasChoices("KISS_TRACKER_PORT", "PORT", "port"))
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    frontend_url: str = Field(
        "http://localhost:3000",
        validation_alias=AliasChoices("KISS_TRACKER_FRONTEND_URL", "FRONTEND_URL", "frontend_url"),
    )
    database_url: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("KISS_TRACKER_DATABASE_URL", "DATABASE_URL", "database_url"),
    )
    data_dir: str = str(DEFAULT_DATA_DIR)
    log_level: str = LOG_LEVEL
    heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS
    subscriber_queue_size: int = SUBSCRIBER_QUEUE_SIZE
    enable_debug_routes: bool = False

    model_config = SettingsConfigDict(
        env_prefix="KISS_TRACKER_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("frontend_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("database_url")
    @classmethod
    def _blank_is_unset(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @field_validator("heartbeat_interval")
    @classmethod
    def _positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("heartbeat_interval must be positive")
        return value
