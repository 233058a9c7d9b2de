"""Exception hierarchy for the alert dispatch engine."""

from __future__ import annotations


class AlertError(Exception):
    """Base exception for all alert dispatch errors."""


class ChannelDeliveryError(AlertError):
    """A notification channel failed to deliver an alert."""

    def __init__(self, channel: str, reason: str) -> None:
        super().__init__(f"{channel}: {reason}")
        self.channel = channel
        self.reason = reason


class AlertConfigError(AlertError):
    """The dispatch stack cannot be built from the given configuration."""
