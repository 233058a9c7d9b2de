"""Tests for AlertDispatcher: ordering of dedup, quota, redaction, routing, bookkeeping."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, call, patch

import pytest
from pydantic import SecretStr

from src.alerts.channels import NotificationChannel, PagerDutyChannel
from src.alerts.dispatcher import AlertDispatcher
from src.alerts.redactor import REDACTED
from src.alerts.types import AlertRequest, DispatchStatus, SanitizedAlert, Severity
from src.core.config import AlertsConfig, PagerDutyConfig


# ── Helpers ─────────────────────────────────────────────────────


class FakeChannel(NotificationChannel):
    """In-memory channel; fails the first *failures* sends."""

    def __init__(self, name: str, failures: int = 0) -> None:
        self.name = name
        self.sent: list[SanitizedAlert] = []
        self.calls = 0
        self._failures = failures
        self.closed = False

    async def send(self, alert: SanitizedAlert) -> bool:
        self.calls += 1
        if self.calls <= self._failures:
            raise ConnectionError(f"{self.name} down")
        self.sent.append(alert)
        return True

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class Stack:
    def __init__(
        self,
        paging_failures: int = 0,
        chat_failures: int = 0,
        email_failures: int = 0,
        config: AlertsConfig | None = None,
    ) -> None:
        self.clock = FakeClock()
        self.paging = FakeChannel("pagerduty", paging_failures)
        self.chat = FakeChannel("slack", chat_failures)
        self.email = FakeChannel("email", email_failures)
        self.dispatcher = AlertDispatcher(
            paging=self.paging,
            chat=self.chat,
            email=self.email,
            config=config,
            clock=self.clock,
        )

    @property
    def total_calls(self) -> int:
        return self.paging.calls + self.chat.calls + self.email.calls


# ── Routing through the façade ─────────────────────────────────


class TestRouting:
    async def test_critical_to_paging(self) -> None:
        s = Stack()
        status = await s.dispatcher.send_alert(
            Severity.CRITICAL, "Database connection failure",
            "Unable to connect to primary database", "org-123",
            correlation_id="corr-123",
        )
        assert status is DispatchStatus.DELIVERED
        assert len(s.paging.sent) == 1
        sent = s.paging.sent[0]
        assert sent.severity.label == "critical"
        assert sent.title == "Database connection failure"
        assert sent.message == "Unable to connect to primary database"
        assert sent.tenant_id == "org-123"
        assert sent.correlation_id == "corr-123"
        assert sent.timestamp

    async def test_warning_to_chat(self) -> None:
        s = Stack()
        await s.dispatcher.send_alert(Severity.WARNING, "Queue depth increasing", "at 500", "org-123")
        assert len(s.chat.sent) == 1
        assert s.email.calls == 0

    async def test_info_to_email(self) -> None:
        s = Stack()
        await s.dispatcher.send_alert(Severity.INFO, "Weekly summary", "Orders: 1000", "org-123")
        assert len(s.email.sent) == 1
        assert s.paging.calls == 0
        assert s.chat.calls == 0

    async def test_severity_name_accepted(self) -> None:
        s = Stack()
        status = await s.dispatcher.send_alert("CRITICAL", "Disk full", "vol at 99%", "org-123")
        assert status is DispatchStatus.DELIVERED
        assert s.paging.sent[0].severity is Severity.CRITICAL

    async def test_dispatch_accepts_request(self) -> None:
        s = Stack()
        req = AlertRequest(
            severity=Severity.INFO, title="t", message="m", tenant_id="org-1",
        )
        assert await s.dispatcher.dispatch(req) is DispatchStatus.DELIVERED

    async def test_correlation_id_passed_through_unmodified(self) -> None:
        s = Stack()
        await s.dispatcher.send_alert(
            Severity.INFO, "t", "m", "org-1", correlation_id="Token=Opaque/ID",
        )
        assert s.email.sent[0].correlation_id == "Token=Opaque/ID"


# ── Deduplication ──────────────────────────────────────────────


class TestDeduplication:
    async def test_repeat_critical_within_window_sent_once(self) -> None:
        s = Stack()
        first = await s.dispatcher.send_alert(Severity.CRITICAL, "DB down", "conn failed", "T1")
        s.clock.now += 10
        second = await s.dispatcher.send_alert(Severity.CRITICAL, "DB down", "conn failed", "T1")
        assert first is DispatchStatus.DELIVERED
        assert second is DispatchStatus.DUPLICATE
        assert s.paging.calls == 1

    async def test_sent_again_after_window(self) -> None:
        s = Stack()
        await s.dispatcher.send_alert(Severity.WARNING, "Queue growing", "depth=500", "T1")
        s.clock.now += 300
        await s.dispatcher.send_alert(Severity.WARNING, "Queue growing", "depth=500", "T1")
        assert s.chat.calls == 2

    async def test_key_includes_tenant_severity_title(self) -> None:
        s = Stack()
        await s.dispatcher.send_alert(Severity.WARNING, "A", "m", "T1")
        await s.dispatcher.send_alert(Severity.WARNING, "A", "m", "T2")
        await s.dispatcher.send_alert(Severity.INFO, "A", "m", "T1")
        await s.dispatcher.send_alert(Severity.WARNING, "B", "m", "T1")
        assert s.chat.calls == 3
        assert s.email.calls == 1

    async def test_message_not_part_of_key(self) -> None:
        s = Stack()
        await s.dispatcher.send_alert(Severity.WARNING, "A", "first", "T1")
        status = await s.dispatcher.send_alert(Severity.WARNING, "A", "second", "T1")
        assert status is DispatchStatus.DUPLICATE
        assert s.chat.calls == 1

    async def test_duplicate_does_not_consume_quota(self) -> None:
        s = Stack(config=AlertsConfig(rate_limit_per_hour=2))
        for _ in range(5):
            await s.dispatcher.send_alert(Severity.INFO, "same", "m", "T1")
        status = await s.dispatcher.send_alert(Severity.INFO, "other", "m", "T1")
        assert status is DispatchStatus.DELIVERED
        assert s.email.calls == 2

    async def test_duplicate_not_counted_in_stats(self) -> None:
        s = Stack()
        await s.dispatcher.send_alert(Severity.INFO, "same", "m", "T1")
        await s.dispatcher.send_alert(Severity.INFO, "same", "m", "T1")
        stats = s.dispatcher.stats
        assert stats.delivered == 1
        assert stats.rate_limited == 0

    async def test_custom_window(self) -> None:
        s = Stack(config=AlertsConfig(dedup_window_ms=1000))
        await s.dispatcher.send_alert(Severity.INFO, "t", "m", "T1")
        s.clock.now += 1.5
        await s.dispatcher.send_alert(Severity.INFO, "t", "m", "T1")
        assert s.email.calls == 2


# ── Rate limiting ──────────────────────────────────────────────


class TestRateLimiting:
    async def test_101st_warning_dropped_silently(self) -> None:
        s = Stack()
        statuses = [
            await s.dispatcher.send_alert(Severity.WARNING, f"Alert {i}", f"Message {i}", "T1")
            for i in range(101)
        ]
        assert s.chat.calls + s.email.calls == 100
        assert statuses[-1] is DispatchStatus.RATE_LIMITED
        assert s.dispatcher.stats.rate_limited == 1

    async def test_quota_per_tenant(self) -> None:
        s = Stack(config=AlertsConfig(rate_limit_per_hour=1))
        await s.dispatcher.send_alert(Severity.INFO, "a", "m", "T1")
        await s.dispatcher.send_alert(Severity.INFO, "b", "m", "T1")
        await s.dispatcher.send_alert(Severity.INFO, "a", "m", "T2")
        assert s.email.calls == 2

    async def test_quota_resets_after_an_hour(self) -> None:
        s = Stack(config=AlertsConfig(rate_limit_per_hour=1))
        await s.dispatcher.send_alert(Severity.INFO, "a", "m", "T1")
        assert await s.dispatcher.send_alert(Severity.INFO, "b", "m", "T1") is (
            DispatchStatus.RATE_LIMITED
        )
        s.clock.now += 3601
        assert await s.dispatcher.send_alert(Severity.INFO, "c", "m", "T1") is (
            DispatchStatus.DELIVERED
        )

    async def test_rate_limited_not_marked_sent(self) -> None:
        s = Stack(config=AlertsConfig(rate_limit_per_hour=1))
        await s.dispatcher.send_alert(Severity.INFO, "a", "m", "T1")
        await s.dispatcher.send_alert(Severity.INFO, "b", "m", "T1")
        s.clock.now += 3601
        # "b" was dropped before routing, so it is not a duplicate now.
        assert await s.dispatcher.send_alert(Severity.INFO, "b", "m", "T1") is (
            DispatchStatus.DELIVERED
        )


# ── Redaction ──────────────────────────────────────────────────


class TestRedaction:
    async def test_message_and_metadata_sanitized(self) -> None:
        s = Stack()
        await s.dispatcher.send_alert(
            Severity.WARNING, "Masked", "failed with token=abc123xyz", "T1",
            metadata={"apiKey": "sk-12345", "queue": "orders"},
        )
        sent = s.chat.sent[0]
        assert "abc123xyz" not in sent.message
        assert REDACTED in sent.message
        assert sent.metadata == {"queue": "orders"}

    async def test_critical_payload_sanitized(self) -> None:
        s = Stack()
        await s.dispatcher.send_alert(
            Severity.CRITICAL, "Security test", "Error with password=secret123", "T1",
            metadata={"apiKey": "sk-12345"},
        )
        sent = s.paging.sent[0]
        assert "secret123" not in sent.message
        assert "apiKey" not in (sent.metadata or {})

    async def test_fallback_email_gets_sanitized_message(self) -> None:
        s = Stack(chat_failures=1)
        await s.dispatcher.send_alert(Severity.WARNING, "Queue growing", "depth=500 key=zzz", "T1")
        assert s.email.calls == 1
        assert s.email.sent[0].title == "Queue growing"
        assert s.email.sent[0].message == f"depth=500 {REDACTED}"

    async def test_request_left_untouched(self) -> None:
        s = Stack()
        req = AlertRequest(
            severity=Severity.INFO, title="t", message="token=abc", tenant_id="T1",
            metadata={"token": "x"},
        )
        await s.dispatcher.dispatch(req)
        assert req.message == "token=abc"
        assert req.metadata == {"token": "x"}


# ── Failure policy ─────────────────────────────────────────────


class TestStructuredMetadata:
    async def test_datetime_metadata_pages_once(self) -> None:
        paging = PagerDutyChannel(PagerDutyConfig(routing_key=SecretStr("rk-fake")))
        resp = AsyncMock()
        resp.status = 202
        resp.__aenter__ = AsyncMock(return_value=resp)
        resp.__aexit__ = AsyncMock(return_value=False)
        session = MagicMock()
        session.post = MagicMock(return_value=resp)
        session.closed = False
        paging._session = session
        d = AlertDispatcher(
            paging=paging,
            chat=FakeChannel("slack"),
            email=FakeChannel("email"),
            clock=FakeClock(),
        )

        with patch("src.alerts.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            status = await d.send_alert(
                Severity.CRITICAL, "Disk full", "vol at 99%", "org-1",
                metadata={"at": datetime.now(timezone.utc)},
            )

        assert status is DispatchStatus.DELIVERED
        session.post.assert_called_once()
        sleep.assert_not_awaited()
        sent = session.post.call_args[1]["json"]
        assert isinstance(sent["payload"]["custom_details"]["metadata"]["at"], str)
        json.dumps(sent)
        assert d.stats.failed == 0


class TestFailurePolicy:
    async def test_critical_total_outage_raises_after_retries(self) -> None:
        s = Stack(paging_failures=99)
        with patch("src.alerts.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ConnectionError):
                await s.dispatcher.send_alert(Severity.CRITICAL, "DB down", "conn failed", "T1")
        assert s.paging.calls == 3
        assert sleep.await_args_list == [call(1.0), call(2.0)]
        assert s.dispatcher.stats.failed == 1

    async def test_failed_critical_still_marked_and_counted(self) -> None:
        s = Stack(paging_failures=99, config=AlertsConfig(rate_limit_per_hour=1))
        with patch("src.alerts.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(ConnectionError):
                await s.dispatcher.send_alert(Severity.CRITICAL, "DB down", "conn failed", "T1")
            second = await s.dispatcher.send_alert(Severity.CRITICAL, "DB down", "conn failed", "T1")
            third = await s.dispatcher.send_alert(Severity.CRITICAL, "Other", "x", "T1")
        assert second is DispatchStatus.DUPLICATE
        assert third is DispatchStatus.RATE_LIMITED
        assert s.paging.calls == 3

    async def test_critical_retry_recovers(self) -> None:
        s = Stack(paging_failures=1)
        with patch("src.alerts.retry.asyncio.sleep", new_callable=AsyncMock):
            status = await s.dispatcher.send_alert(Severity.CRITICAL, "Retry test", "x", "T1")
        assert status is DispatchStatus.DELIVERED
        assert s.paging.calls == 2

    async def test_retry_config_applied(self) -> None:
        s = Stack(paging_failures=99, config=AlertsConfig(max_attempts=2, retry_backoff_ms=500))
        with patch("src.alerts.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ConnectionError):
                await s.dispatcher.send_alert(Severity.CRITICAL, "DB down", "x", "T1")
        assert s.paging.calls == 2
        assert sleep.await_args_list == [call(0.5)]

    async def test_warning_fallback_no_exception(self) -> None:
        s = Stack(chat_failures=1)
        status = await s.dispatcher.send_alert(Severity.WARNING, "Queue growing", "depth=500", "T1")
        assert status is DispatchStatus.FALLBACK_DELIVERED
        assert s.dispatcher.stats.fallbacks == 1

    async def test_warning_total_outage_no_exception(self) -> None:
        s = Stack(chat_failures=99, email_failures=99)
        status = await s.dispatcher.send_alert(Severity.WARNING, "Queue growing", "x", "T1")
        assert status is DispatchStatus.UNDELIVERED
        assert s.dispatcher.stats.undelivered == 1

    async def test_info_failure_swallowed_but_recorded(self) -> None:
        s = Stack(email_failures=99)
        status = await s.dispatcher.send_alert(Severity.INFO, "Weekly", "x", "T1")
        assert status is DispatchStatus.UNDELIVERED
        again = await s.dispatcher.send_alert(Severity.INFO, "Weekly", "x", "T1")
        assert again is DispatchStatus.DUPLICATE
        assert s.email.calls == 1


# ── Decision logging ───────────────────────────────────────────


class TestDecisionLogging:
    async def test_decision_logged_for_routed_alert(self) -> None:
        s = Stack()
        with patch("src.alerts.dispatcher.decision_logger") as mock_log:
            await s.dispatcher.send_alert(
                Severity.WARNING, "Queue growing", "token=abc", "T1", correlation_id="c-1",
            )
            mock_log.info.assert_called_once()
            args, kwargs = mock_log.info.call_args
            assert args[0] == "decision"
            assert kwargs["status"] == "DELIVERED"
            assert kwargs["channel"] == "slack"
            assert kwargs["correlation_id"] == "c-1"
            assert "message" not in kwargs

    async def test_no_decision_for_duplicate(self) -> None:
        s = Stack()
        await s.dispatcher.send_alert(Severity.INFO, "t", "m", "T1")
        with patch("src.alerts.dispatcher.decision_logger") as mock_log:
            await s.dispatcher.send_alert(Severity.INFO, "t", "m", "T1")
            mock_log.info.assert_not_called()


# ── Lifecycle ──────────────────────────────────────────────────


class TestLifecycle:
    async def test_close_channels(self) -> None:
        s = Stack()
        await s.dispatcher.close()
        assert s.paging.closed
        assert s.chat.closed
        assert s.email.closed
