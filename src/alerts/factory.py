"""Convenience factory for wiring the alert dispatch stack."""

from __future__ import annotations

from src.alerts.channels import EmailChannel, PagerDutyChannel, SlackChannel
from src.alerts.dispatcher import AlertDispatcher
from src.alerts.exceptions import AlertConfigError
from src.core.config import AlertsConfig


def create_alert_dispatcher(config: AlertsConfig) -> AlertDispatcher:
    """Build the three channels and a dispatcher from config.

    Raises:
        AlertConfigError: PagerDuty routing key or Slack webhook URL missing.
    """
    if not config.pagerduty.routing_key.get_secret_value():
        raise AlertConfigError("alerts.pagerduty.routing_key is required")
    if not config.slack.webhook_url.get_secret_value():
        raise AlertConfigError("alerts.slack.webhook_url is required")

    return AlertDispatcher(
        paging=PagerDutyChannel(config.pagerduty),
        chat=SlackChannel(config.slack),
        email=EmailChannel(config.email),
        config=config,
    )
