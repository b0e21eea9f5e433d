"""Alert types, rate limiting, notification channels and the dispatcher."""

from jobguard.alerting.channels import (
    NotificationChannel,
    PagerDutyChannel,
    SlackChannel,
    WebhookChannel,
    create_channel,
)
from jobguard.alerting.dispatcher import AlertDispatcher
from jobguard.alerting.exceptions import (
    AlertingError,
    ChannelError,
    ChannelNotFoundError,
    InvalidAlertError,
    UnknownChannelTypeError,
)
from jobguard.alerting.rate_limiter import RateLimiter, TokenBucket
from jobguard.alerting.types import (
    Alert,
    AlertContext,
    ChannelStats,
    DispatchOutcome,
    alert_key,
)

__all__ = [
    "Alert",
    "AlertContext",
    "AlertDispatcher",
    "AlertingError",
    "ChannelError",
    "ChannelNotFoundError",
    "ChannelStats",
    "DispatchOutcome",
    "InvalidAlertError",
    "NotificationChannel",
    "PagerDutyChannel",
    "RateLimiter",
    "SlackChannel",
    "TokenBucket",
    "UnknownChannelTypeError",
    "WebhookChannel",
    "alert_key",
    "create_channel",
]
