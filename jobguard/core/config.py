"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/jobguard.yaml")


class SchedulerConfig(BaseModel):
    """Tick intervals for the periodic coordinators."""

    dead_man_interval_secs: float = 60.0
    sla_recalc_interval_secs: float = 300.0
    stuck_check_interval_secs: float = 60.0
    prune_interval_secs: float = 3600.0
    startup_grace_period_secs: float = 0.0


class ChannelRateLimit(BaseModel):
    """Token-bucket limits for a single notification channel."""

    max_alerts_per_hour: int = Field(default=100, ge=1)
    burst: int = Field(default=10, ge=1)


class RateLimitsConfig(BaseModel):
    """Global and per-channel alert rate limits."""

    max_alerts_per_minute: int = 50
    global_burst: int = 10
    default_channel: ChannelRateLimit = ChannelRateLimit()
    channels: dict[str, ChannelRateLimit] = Field(default_factory=dict)

    def for_channel(self, name: str) -> ChannelRateLimit:
        return self.channels.get(name, self.default_channel)


class HistoryRetentionConfig(BaseModel):
    """Execution history retention."""

    default_days: int = Field(default=30, ge=1)


class LeaderElectionConfig(BaseModel):
    """Leader election gating for single-replica evaluators."""

    enabled: bool = False


class ChannelConfig(BaseModel):
    """Definition of one notification channel.

    ``url`` holds the webhook URL for ``slack`` and ``webhook`` channels and is
    unused for ``pagerduty``, which authenticates with ``routing_key``.
    """

    name: str
    type: str
    url: SecretStr = SecretStr("")
    routing_key: SecretStr = SecretStr("")
    default_channel: str = ""
    method: str = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    pagerduty_severity: str = ""


class LoggingConfig(BaseModel):
    """Logging configuration.

    ``decision_log_path`` sends the dispatcher's per-alert decision records to
    a separate JSON-lines file instead of the main stream.
    """

    level: str = "INFO"
    format: str = "json"
    decision_log_path: str = ""
    logger_levels: dict[str, str] = Field(default_factory=dict)


class Settings(BaseModel):
    """Root settings container."""

    scheduler: SchedulerConfig = SchedulerConfig()
    rate_limits: RateLimitsConfig = RateLimitsConfig()
    history_retention: HistoryRetentionConfig = HistoryRetentionConfig()
    leader_election: LeaderElectionConfig = LeaderElectionConfig()
    channels: list[ChannelConfig] = Field(default_factory=list)
    logging: LoggingConfig = LoggingConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/jobguard.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
