"""Alert dispatch and notification routing subsystem."""

from src.alerts.channels import (
    EmailChannel,
    NotificationChannel,
    PagerDutyChannel,
    SlackChannel,
)
from src.alerts.dedup import DedupLedger
from src.alerts.dispatcher import AlertDispatcher
from src.alerts.exceptions import AlertConfigError, AlertError, ChannelDeliveryError
from src.alerts.factory import create_alert_dispatcher
from src.alerts.rate_limit import RateLimitWindow, TenantRateLimiter
from src.alerts.redactor import REDACTED, redact, redact_metadata
from src.alerts.retry import run_with_retry
from src.alerts.router import DeliveryPolicy, SeverityRouter
from src.alerts.types import (
    AlertRequest,
    DispatchStats,
    DispatchStatus,
    EmailMessage,
    RouteResult,
    SanitizedAlert,
    Severity,
)

__all__ = [
    "REDACTED",
    "AlertConfigError",
    "AlertDispatcher",
    "AlertError",
    "AlertRequest",
    "ChannelDeliveryError",
    "DedupLedger",
    "DeliveryPolicy",
    "DispatchStats",
    "DispatchStatus",
    "EmailChannel",
    "EmailMessage",
    "NotificationChannel",
    "PagerDutyChannel",
    "RateLimitWindow",
    "RouteResult",
    "SanitizedAlert",
    "Severity",
    "SeverityRouter",
    "SlackChannel",
    "TenantRateLimiter",
    "create_alert_dispatcher",
    "redact",
    "redact_metadata",
    "run_with_retry",
]
