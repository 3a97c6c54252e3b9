"""Application configuration loading."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic_settings import BaseSettings, SettingsConfigDict

from uptime_reconciler.models import MonitorTarget

_TARGET_LIST = TypeAdapter(list[MonitorTarget])


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = "sqlite+aiosqlite:///./uptime.db"
    state_key: str = "state"
    monitors_file: Path | None = None
    grace_period_minutes: int | None = Field(default=None, ge=0)
    apprise_api_server: str | None = None
    apprise_recipient_url: str | None = None
    notification_timezone: str = "Etc/GMT"
    kv_write_cooldown_minutes: int = Field(default=3, ge=0)
    probe_concurrency: int = Field(default=6, ge=1)
    check_interval_s: int = Field(default=60, ge=1)
    location: str | None = None
    cloudflare_zone_id: str | None = None
    cloudflare_api_token: str | None = None
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    scheduler_enabled: bool = False
    log_level: str = "INFO"


class NotificationConfig(BaseModel):
    """Where and how status-change notifications are delivered."""

    model_config = ConfigDict(frozen=True)

    apprise_api_server: str
    recipient_url: str
    timezone: str = "Etc/GMT"


class WorkerConfig(BaseModel):
    """Immutable configuration handed to the reconciliation engine."""

    model_config = ConfigDict(frozen=True)

    monitors: tuple[MonitorTarget, ...] = ()
    grace_period_minutes: int | None = None
    notification: NotificationConfig | None = None
    kv_write_cooldown_minutes: int = 3
    probe_concurrency: int = 6
    state_key: str = "state"


def load_monitors(path: Path) -> list[MonitorTarget]:
    """Read the statically configured targets from a JSON file."""
    return _TARGET_LIST.validate_json(path.read_bytes())


def load_worker_config(settings: Settings) -> WorkerConfig:
    """Build the engine configuration from settings and the monitors file."""
    monitors = load_monitors(settings.monitors_file) if settings.monitors_file else []

    notification = None
    if settings.apprise_api_server and settings.apprise_recipient_url:
        notification = NotificationConfig(
            apprise_api_server=settings.apprise_api_server,
            recipient_url=settings.apprise_recipient_url,
            timezone=settings.notification_timezone,
        )

    return WorkerConfig(
        monitors=tuple(monitors),
        grace_period_minutes=settings.grace_period_minutes,
        notification=notification,
        kv_write_cooldown_minutes=settings.kv_write_cooldown_minutes,
        probe_concurrency=settings.probe_concurrency,
        state_key=settings.state_key,
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""
    return Settings()
