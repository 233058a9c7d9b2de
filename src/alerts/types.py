"""Domain types for the alert dispatch engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Severity(IntEnum):
    """Alert severity, ordered so comparisons work naturally."""

    INFO = 1
    WARNING = 2
    CRITICAL = 3

    @property
    def label(self) -> str:
        """Lower-case name used in channel payloads."""
        return self.name.lower()


class DispatchStatus(str, Enum):
    """What happened to a single ``send_alert`` call."""

    DUPLICATE = "DUPLICATE"
    RATE_LIMITED = "RATE_LIMITED"
    DELIVERED = "DELIVERED"
    FALLBACK_DELIVERED = "FALLBACK_DELIVERED"
    UNDELIVERED = "UNDELIVERED"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _severity_from_name(value: Any) -> Any:
    """Accept "critical" or "CRITICAL" as well as a Severity or its int value."""
    if isinstance(value, str) and value.upper() in Severity.__members__:
        return Severity[value.upper()]
    return value


class AlertRequest(BaseModel):
    """Caller-supplied alert, before any suppression or redaction."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    title: str
    message: str
    tenant_id: str
    correlation_id: str | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("severity", mode="before")
    @classmethod
    def severity_from_name(cls, value: Any) -> Any:
        return _severity_from_name(value)

    @property
    def dedup_key(self) -> str:
        return f"{self.tenant_id}:{self.severity.name}:{self.title}"


class SanitizedAlert(BaseModel):
    """Redacted, timestamped alert handed to notification channels."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    title: str
    message: str
    tenant_id: str
    correlation_id: str | None = None
    metadata: dict[str, Any] | None = None
    timestamp: str = Field(default_factory=_utc_now_iso)

    @field_validator("severity", mode="before")
    @classmethod
    def severity_from_name(cls, value: Any) -> Any:
        return _severity_from_name(value)


class EmailMessage(BaseModel):
    """Queued outbound email, consumed by the batch mail sender."""

    to: str
    subject: str
    body: str
    correlation_id: str | None = None


@dataclass
class RouteResult:
    """Outcome of routing one alert through its severity policy."""

    channel: str
    delivered: bool
    attempts: int = 1
    fell_back: bool = False


@dataclass
class DispatchStats:
    """Process-local counters for alerts that cleared deduplication."""

    rate_limited: int = 0
    delivered: int = 0
    fallbacks: int = 0
    undelivered: int = 0
    failed: int = 0
