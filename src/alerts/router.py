"""Severity router: maps each severity to a channel and a delivery policy."""

from __future__ import annotations

from enum import Enum

import structlog

from src.alerts.channels import NotificationChannel
from src.alerts.exceptions import ChannelDeliveryError
from src.alerts.retry import run_with_retry
from src.alerts.types import RouteResult, SanitizedAlert, Severity

logger = structlog.get_logger(__name__)


class DeliveryPolicy(str, Enum):
    RETRY = "RETRY"
    FALLBACK = "FALLBACK"
    FIRE_AND_FORGET = "FIRE_AND_FORGET"


# severity -> (channel slot, policy)
ROUTING_TABLE: dict[Severity, tuple[str, DeliveryPolicy]] = {
    Severity.CRITICAL: ("paging", DeliveryPolicy.RETRY),
    Severity.WARNING: ("chat", DeliveryPolicy.FALLBACK),
    Severity.INFO: ("email", DeliveryPolicy.FIRE_AND_FORGET),
}


async def _deliver(channel: NotificationChannel, alert: SanitizedAlert) -> None:
    if not await channel.send(alert):
        raise ChannelDeliveryError(channel.name, "channel reported failure")


class SeverityRouter:
    """Delivers a sanitized alert according to its severity.

    - CRITICAL → paging, retried with linear backoff; the last error escapes.
    - WARNING  → chat once, then one best-effort email on failure.
    - INFO     → email once; failures are logged and dropped.
    """

    def __init__(
        self,
        paging: NotificationChannel,
        chat: NotificationChannel,
        email: NotificationChannel,
        max_attempts: int = 3,
        backoff_secs: float = 1.0,
    ) -> None:
        self._slots: dict[str, NotificationChannel] = {
            "paging": paging,
            "chat": chat,
            "email": email,
        }
        self._max_attempts = max_attempts
        self._backoff_secs = backoff_secs

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._slots.values())

    async def route(self, alert: SanitizedAlert) -> RouteResult:
        slot, policy = ROUTING_TABLE[alert.severity]
        channel = self._slots[slot]

        if policy is DeliveryPolicy.RETRY:
            return await self._send_with_retry(channel, alert)
        if policy is DeliveryPolicy.FALLBACK:
            return await self._send_with_fallback(channel, self._slots["email"], alert)
        return await self._send_once(channel, alert)

    async def _send_with_retry(
        self, channel: NotificationChannel, alert: SanitizedAlert
    ) -> RouteResult:
        attempts = 0

        async def attempt() -> None:
            nonlocal attempts
            attempts += 1
            await _deliver(channel, alert)

        await run_with_retry(
            attempt,
            max_attempts=self._max_attempts,
            backoff_secs=self._backoff_secs,
        )
        return RouteResult(channel=channel.name, delivered=True, attempts=attempts)

    async def _send_with_fallback(
        self,
        primary: NotificationChannel,
        fallback: NotificationChannel,
        alert: SanitizedAlert,
    ) -> RouteResult:
        try:
            await _deliver(primary, alert)
            return RouteResult(channel=primary.name, delivered=True)
        except Exception as exc:
            logger.warning(
                "channel_fallback",
                channel=primary.name,
                fallback=fallback.name,
                title=alert.title,
                error=str(exc),
            )

        try:
            await _deliver(fallback, alert)
            return RouteResult(channel=fallback.name, delivered=True, attempts=2, fell_back=True)
        except Exception:
            logger.exception("fallback_failed", channel=fallback.name, title=alert.title)
            return RouteResult(channel=fallback.name, delivered=False, attempts=2, fell_back=True)

    async def _send_once(
        self, channel: NotificationChannel, alert: SanitizedAlert
    ) -> RouteResult:
        try:
            await _deliver(channel, alert)
            return RouteResult(channel=channel.name, delivered=True)
        except Exception:
            logger.exception("channel_send_dropped", channel=channel.name, title=alert.title)
            return RouteResult(channel=channel.name, delivered=False)

    async def close(self) -> None:
        for ch in self.channels:
            try:
                await ch.close()
            except Exception:
                logger.exception("channel_close_error", channel=ch.name)
