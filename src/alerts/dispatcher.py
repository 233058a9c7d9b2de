"""Alert dispatcher: dedup, tenant quota, redaction, then severity routing."""

from __future__ import annotations

import time
from dataclasses import replace
from typing import Any, Callable

import structlog

from src.alerts.channels import NotificationChannel
from src.alerts.dedup import DedupLedger
from src.alerts.rate_limit import TenantRateLimiter
from src.alerts.redactor import redact, redact_metadata
from src.alerts.router import SeverityRouter
from src.alerts.types import (
    AlertRequest,
    DispatchStats,
    DispatchStatus,
    SanitizedAlert,
    Severity,
)
from src.core.config import AlertsConfig

# Dedicated structured logger for decision records.
decision_logger = structlog.get_logger("decision_log")

logger = structlog.get_logger(__name__)


class AlertDispatcher:
    """Single entry point turning alert requests into channel deliveries.

    Order of operations per alert:

    1. Duplicate of the same tenant/severity/title inside the dedup window
       → dropped with a debug trace, nothing else recorded.
    2. Tenant over its hourly quota → dropped silently.
    3. Message and metadata redacted.
    4. Routed by severity (see :class:`SeverityRouter`).
    5. Dedup timestamp and quota updated, even if routing raised.

    Only CRITICAL alerts can raise out of :meth:`send_alert`, once paging
    retries are exhausted.  Ledger and quota state are in-memory and owned
    by this instance; they are not shared across processes.
    """

    def __init__(
        self,
        paging: NotificationChannel,
        chat: NotificationChannel,
        email: NotificationChannel,
        config: AlertsConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        cfg = config or AlertsConfig()
        self._ledger = DedupLedger(
            window_secs=cfg.dedup_window_ms / 1000.0,
            cleanup_threshold=cfg.dedup_cleanup_threshold,
            clock=clock,
        )
        self._limiter = TenantRateLimiter(limit=cfg.rate_limit_per_hour, clock=clock)
        self._router = SeverityRouter(
            paging=paging,
            chat=chat,
            email=email,
            max_attempts=cfg.max_attempts,
            backoff_secs=cfg.retry_backoff_ms / 1000.0,
        )
        self._stats = DispatchStats()

    @property
    def stats(self) -> DispatchStats:
        return replace(self._stats)

    async def send_alert(
        self,
        severity: Severity | str,
        title: str,
        message: str,
        tenant_id: str,
        correlation_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> DispatchStatus:
        """Build an :class:`AlertRequest` from arguments and dispatch it.

        *severity* may be a :class:`Severity` or its name in any case.
        """
        request = AlertRequest(
            severity=severity,
            title=title,
            message=message,
            tenant_id=tenant_id,
            correlation_id=correlation_id,
            metadata=metadata,
        )
        return await self.dispatch(request)

    async def dispatch(self, request: AlertRequest) -> DispatchStatus:
        key = request.dedup_key
        if self._ledger.is_duplicate(key):
            logger.debug("alert_deduplicated", title=request.title, tenant_id=request.tenant_id)
            return DispatchStatus.DUPLICATE

        if not self._limiter.check_quota(request.tenant_id):
            self._stats.rate_limited += 1
            logger.warning(
                "alert_rate_limited",
                tenant_id=request.tenant_id,
                limit=self._limiter.limit,
            )
            return DispatchStatus.RATE_LIMITED

        alert = SanitizedAlert(
            severity=request.severity,
            title=request.title,
            message=redact(request.message),
            tenant_id=request.tenant_id,
            correlation_id=request.correlation_id,
            metadata=redact_metadata(request.metadata),
        )

        try:
            result = await self._router.route(alert)
        except Exception:
            self._stats.failed += 1
            logger.error(
                "alert_delivery_failed",
                severity=alert.severity.name,
                title=alert.title,
                tenant_id=alert.tenant_id,
                correlation_id=alert.correlation_id,
            )
            raise
        finally:
            self._ledger.mark_sent(key)
            self._limiter.consume(request.tenant_id)

        if not result.delivered:
            self._stats.undelivered += 1
            status = DispatchStatus.UNDELIVERED
        elif result.fell_back:
            self._stats.fallbacks += 1
            status = DispatchStatus.FALLBACK_DELIVERED
        else:
            self._stats.delivered += 1
            status = DispatchStatus.DELIVERED

        self._log_decision(alert, result.channel, result.attempts, status)
        return status

    def _log_decision(
        self,
        alert: SanitizedAlert,
        channel: str,
        attempts: int,
        status: DispatchStatus,
    ) -> None:
        decision_logger.info(
            "decision",
            status=status.value,
            severity=alert.severity.name,
            title=alert.title,
            tenant_id=alert.tenant_id,
            correlation_id=alert.correlation_id,
            channel=channel,
            attempts=attempts,
        )

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        await self._router.close()
