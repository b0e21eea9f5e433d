"""Alerting exceptions."""

from __future__ import annotations


class AlertingError(Exception):
    """Base exception for alert dispatch errors."""


class InvalidAlertError(AlertingError):
    """An alert was rejected at the API boundary (e.g. empty dedup key)."""


class ChannelError(AlertingError):
    """A notification channel failed to deliver an alert."""

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(f"{channel}: {message}")
        self.channel = channel


class ChannelNotFoundError(AlertingError):
    """No channel is registered under the requested name."""


class UnknownChannelTypeError(AlertingError):
    """A channel definition names a type with no adapter."""
