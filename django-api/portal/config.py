"""Portal configuration loaded from environment variables.

Django settings and the classroom services both read from get_config(),
so every tunable lives in one place.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PortalConfig(BaseSettings):
    """Portal configuration loaded from PORTAL_* environment variables.

    For local development, create a .env file in the django-api directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="PORTAL_",
        env_file=".env",
        extra="ignore",
    )

    # Django core
    secret_key: str = Field(
        default="portal-local-secret-key",
        description="Django SECRET_KEY",
    )
    debug: bool = Field(default=False, description="Django DEBUG flag")
    allowed_hosts: list[str] = Field(
        default_factory=lambda: ["localhost", "127.0.0.1", "testserver"],
        description="Django ALLOWED_HOSTS",
    )

    # Database
    db_engine: str = Field(
        default="django.db.backends.sqlite3",
        description="Django database backend",
    )
    db_name: str = Field(default="portal.sqlite3", description="Database name or sqlite path")
    db_user: str = Field(default="", description="Database user")
    db_password: str = Field(default="", description="Database password")
    db_host: str = Field(default="", description="Database host")
    db_port: str = Field(default="", description="Database port")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=False, description="Emit JSON log lines")

    # Early-end approval polling
    end_request_poll_interval_sec: int = Field(
        default=5,
        ge=1,
        description="Interval at which clients poll a pending end-class request",
    )
    force_end_after_sec: int = Field(
        default=180,
        ge=0,
        description="Wait after which a client may force-end an unresolved request",
    )
    cache_ttl_sec: int = Field(
        default=30,
        ge=0,
        description="TTL for cached end-request status responses",
    )

    # Video transport control
    transport_base_url: str = Field(
        default="",
        description="Base URL of the room control API; empty disables teardown calls",
    )
    transport_api_key: str = Field(default="", description="Bearer key for the room control API")
    transport_timeout_sec: float = Field(default=5.0, gt=0, description="Room control request timeout")
    transport_webhook_key: str = Field(
        default="",
        description="Shared key expected in X-Transport-Key on transport webhooks",
    )

    # Notification outbox
    notification_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Delivery attempts before an outbox row is marked failed",
    )
    notification_batch_size: int = Field(
        default=100,
        ge=1,
        description="Outbox rows drained per dispatch run",
    )
    notification_from_email: str = Field(
        default="noreply@portal.local",
        description="Sender address for notification e-mails",
    )


@lru_cache(maxsize=1)
def get_config() -> PortalConfig:
    return PortalConfig()
