"""Notification channels for PagerDuty paging, Slack chat and the email queue.

Channels raise :class:`ChannelDeliveryError` on any transport failure so the
severity router can decide whether to retry, fall back, or give up.
"""

from __future__ import annotations

import abc
import asyncio
from typing import Any

import aiohttp
import structlog

from src.alerts.exceptions import ChannelDeliveryError
from src.alerts.types import EmailMessage, SanitizedAlert, Severity
from src.core.config import EmailConfig, PagerDutyConfig, SlackConfig

logger = structlog.get_logger(__name__)

# Slack header markers keyed by severity.
_SLACK_MARKERS: dict[Severity, str] = {
    Severity.INFO: ":information_source:",
    Severity.WARNING: ":warning:",
    Severity.CRITICAL: ":rotating_light:",
}


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels."""

    name: str = "channel"

    @abc.abstractmethod
    async def send(self, alert: SanitizedAlert) -> bool:
        """Deliver an alert. Returns True on success, may raise on failure."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class _HttpChannel(NotificationChannel):
    """Shared aiohttp session handling for webhook-style channels."""

    _ok_statuses: tuple[int, ...] = (200,)

    def __init__(self, timeout_secs: float) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout_secs)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _post(self, url: str, payload: dict[str, Any]) -> bool:
        try:
            session = self._get_session()
            async with session.post(url, json=payload) as resp:
                if resp.status in self._ok_statuses:
                    return True
                body = await resp.text()
                logger.warning(
                    "channel_send_rejected",
                    channel=self.name,
                    status=resp.status,
                    body=body[:200],
                )
                raise ChannelDeliveryError(self.name, f"HTTP {resp.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ChannelDeliveryError(self.name, f"transport error: {exc!r}") from exc
        except (TypeError, ValueError) as exc:
            raise ChannelDeliveryError(self.name, f"payload not serializable: {exc}") from exc

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class PagerDutyChannel(_HttpChannel):
    """Triggers incidents through the PagerDuty Events API v2."""

    name = "pagerduty"
    _ok_statuses = (200, 201, 202)

    def __init__(self, config: PagerDutyConfig) -> None:
        super().__init__(config.timeout_secs)
        self._routing_key = config.routing_key.get_secret_value()
        self._events_url = config.events_url
        self._source = config.source

    def build_payload(self, alert: SanitizedAlert) -> dict[str, Any]:
        # Metadata is caller-supplied; coerce datetimes, UUIDs and the like to JSON.
        metadata = alert.model_dump(mode="json", include={"metadata"})["metadata"]
        return {
            "routing_key": self._routing_key,
            "event_action": "trigger",
            "payload": {
                "summary": alert.title,
                "severity": alert.severity.label,
                "source": self._source,
                "custom_details": {
                    "message": alert.message,
                    "tenant_id": alert.tenant_id,
                    "correlation_id": alert.correlation_id,
                    "timestamp": alert.timestamp,
                    "metadata": metadata or {},
                },
            },
        }

    async def send(self, alert: SanitizedAlert) -> bool:
        logger.info("pagerduty_trigger", title=alert.title, tenant_id=alert.tenant_id)
        try:
            payload = self.build_payload(alert)
        except ValueError as exc:
            raise ChannelDeliveryError(self.name, f"payload not serializable: {exc}") from exc
        return await self._post(self._events_url, payload)


class SlackChannel(_HttpChannel):
    """Posts block-kit messages to a Slack incoming webhook."""

    name = "slack"

    def __init__(self, config: SlackConfig) -> None:
        super().__init__(config.timeout_secs)
        self._webhook_url = config.webhook_url.get_secret_value()

    def build_payload(self, alert: SanitizedAlert) -> dict[str, Any]:
        marker = _SLACK_MARKERS.get(alert.severity, "")
        context = f"*Tenant:* {alert.tenant_id} | *Time:* {alert.timestamp}"
        if alert.correlation_id:
            context += f" | *Correlation:* {alert.correlation_id}"
        return {
            "text": f"[{alert.severity.name}] {alert.title}",
            "blocks": [
                {
                    "type": "header",
                    "text": {"type": "plain_text", "text": f"{marker} {alert.title}".strip()},
                },
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": alert.message or "_(no message)_"},
                },
                {
                    "type": "context",
                    "elements": [{"type": "mrkdwn", "text": context}],
                },
            ],
        }

    async def send(self, alert: SanitizedAlert) -> bool:
        logger.info("slack_post", title=alert.title, tenant_id=alert.tenant_id)
        return await self._post(self._webhook_url, self.build_payload(alert))


class EmailChannel(NotificationChannel):
    """Queues alert emails for the batch mail sender to pick up."""

    name = "email"

    def __init__(self, config: EmailConfig) -> None:
        self._domain = config.domain
        self._subject_prefix = config.subject_prefix
        self._queue: asyncio.Queue[EmailMessage] = asyncio.Queue(maxsize=config.queue_maxsize)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def build_message(self, alert: SanitizedAlert) -> EmailMessage:
        body = "\n".join([
            f"Alert: {alert.title}",
            f"Severity: {alert.severity.name}",
            "",
            alert.message,
            "",
            f"Tenant: {alert.tenant_id}",
            f"Correlation ID: {alert.correlation_id or 'N/A'}",
            f"Time: {alert.timestamp}",
        ])
        return EmailMessage(
            to=f"alerts@{alert.tenant_id}.{self._domain}",
            subject=f"{self._subject_prefix} {alert.title}".strip(),
            body=body,
            correlation_id=alert.correlation_id,
        )

    async def send(self, alert: SanitizedAlert) -> bool:
        msg = self.build_message(alert)
        try:
            self._queue.put_nowait(msg)
        except asyncio.QueueFull as exc:
            raise ChannelDeliveryError(self.name, "email queue full") from exc
        logger.info("email_queued", title=alert.title, to=msg.to)
        return True

    def drain(self) -> list[EmailMessage]:
        """Remove and return every queued email."""
        drained: list[EmailMessage] = []
        while not self._queue.empty():
            drained.append(self._queue.get_nowait())
        return drained

    async def close(self) -> None:
        if self.pending:
            logger.warning("email_queue_closed_with_pending", pending=self.pending)
