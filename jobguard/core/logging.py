"""Structured logging setup using structlog.

Everything goes through the stdlib ``logging`` tree so third-party loggers
(aiohttp, apscheduler) share the same renderer. The dispatcher's
``decision_log`` logger can be split off into its own JSON-lines file.
"""

from __future__ import annotations

import logging
import sys

import structlog

from jobguard.core.config import LoggingConfig, get_settings

DECISION_LOGGER = "decision_log"


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _formatter(renderer: structlog.types.Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def setup_logging(
    level: str | None = None,
    fmt: str | None = None,
    config: LoggingConfig | None = None,
) -> None:
    """Configure structlog with JSON or console renderer.

    Args:
        level: Log level override (e.g. "DEBUG"). Uses config if None.
        fmt: Renderer format override ("json" or "console"). Uses config if None.
        config: Logging section to apply. Defaults to the cached settings.
    """
    config = config or get_settings().logging
    log_level = getattr(logging, (level or config.level).upper(), logging.INFO)
    log_format = fmt or config.format

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_formatter(renderer))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    decision_logger = logging.getLogger(DECISION_LOGGER)
    decision_logger.handlers.clear()
    if config.decision_log_path:
        file_handler = logging.FileHandler(config.decision_log_path)
        # Decision records are always machine-readable.
        file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
        decision_logger.addHandler(file_handler)
        decision_logger.propagate = False
    else:
        decision_logger.propagate = True

    for name, name_level in config.logger_levels.items():
        logging.getLogger(name).setLevel(name_level.upper())
