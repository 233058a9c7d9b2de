"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class PagerDutyConfig(BaseModel):
    """PagerDuty Events API v2: paging channel for CRITICAL alerts."""

    routing_key: SecretStr = SecretStr("")
    events_url: str = "https://events.pagerduty.com/v2/enqueue"
    source: str = "alert-dispatch"
    timeout_secs: float = Field(default=10.0, gt=0)


class SlackConfig(BaseModel):
    """Slack incoming webhook: chat channel for WARNING alerts."""

    webhook_url: SecretStr = SecretStr("")
    timeout_secs: float = Field(default=10.0, gt=0)


class EmailConfig(BaseModel):
    """Outbound email queue: INFO alerts and the WARNING fallback."""

    domain: str = "alerts.example.com"
    subject_prefix: str = "[Alert]"
    queue_maxsize: int = 1000


class AlertsConfig(BaseModel):
    """Dispatch engine knobs, read once when the dispatcher is built."""

    dedup_window_ms: int = Field(default=300_000, ge=0)
    dedup_cleanup_threshold: int = Field(default=1000, ge=1)
    rate_limit_per_hour: int = Field(default=100, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    retry_backoff_ms: int = Field(default=1000, ge=0)
    pagerduty: PagerDutyConfig = PagerDutyConfig()
    slack: SlackConfig = SlackConfig()
    email: EmailConfig = EmailConfig()


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class Settings(BaseModel):
    """Root settings container."""

    alerts: AlertsConfig = AlertsConfig()
    logging: LoggingConfig = LoggingConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
