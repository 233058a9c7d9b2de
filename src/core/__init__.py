"""Core module: config and logging."""

from src.core.config import (
    AlertsConfig,
    EmailConfig,
    LoggingConfig,
    PagerDutyConfig,
    Settings,
    SlackConfig,
    get_settings,
    load_settings,
    reset_settings,
)
from src.core.logging import setup_logging

__all__ = [
    "AlertsConfig",
    "EmailConfig",
    "LoggingConfig",
    "PagerDutyConfig",
    "Settings",
    "SlackConfig",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
