"""Application settings using pydantic-settings.

Settings are loaded from environment variables (prefix ``LIBRARY_EVENTS_``)
and an optional ``.env`` file, with defaults suited to a single-process
development setup: in-memory broker, logging email channel.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the notification and catalog services.

    Environment variables:
        LIBRARY_EVENTS_SERVICE_NAME: Name reported by the status endpoint
        LIBRARY_EVENTS_BROKER_BACKEND: ``memory`` or ``redis``
        LIBRARY_EVENTS_REDIS_URL: Redis connection URL for the redis backend
        LIBRARY_EVENTS_EMAIL_BACKEND: ``log`` (record and log only) or ``smtp``
        LIBRARY_EVENTS_SMTP_*: SMTP connection settings
        LIBRARY_EVENTS_CONSUMER_QUEUE_SIZE: Bound of each channel consumer queue
        LIBRARY_EVENTS_PUSH_QUEUE_SIZE: Bound of each live push connection queue
        LIBRARY_EVENTS_PUSH_KEEPALIVE_SECONDS: Idle interval before a keep-alive frame
        LIBRARY_EVENTS_DATA_DIR: Directory holding JSON seed fixtures
        LIBRARY_EVENTS_LOG_LEVEL: Root log level
    """

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_EVENTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    service_name: str = Field(default="notification-service")

    broker_backend: Literal["memory", "redis"] = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379")

    email_backend: Literal["log", "smtp"] = Field(default="log")
    email_from: str = Field(default="library@localhost")
    smtp_host: str = Field(default="localhost")
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_user: str = Field(default="")
    smtp_password: SecretStr = Field(default=SecretStr(""))
    smtp_use_tls: bool = Field(default=True)
    smtp_timeout: float = Field(default=10.0, gt=0)

    consumer_queue_size: int = Field(default=1000, ge=1)
    push_queue_size: int = Field(default=100, ge=1)
    push_keepalive_seconds: float = Field(default=15.0, gt=0)

    data_dir: Optional[Path] = Field(default=None)
    default_page_size: int = Field(default=20, ge=1, le=200)
    loan_days: int = Field(default=14, ge=1)
    log_level: str = Field(default="INFO")


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
