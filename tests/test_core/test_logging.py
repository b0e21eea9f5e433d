"""Tests for jobguard/core/logging.py — handler wiring and the decision log."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from jobguard.core.config import LoggingConfig
from jobguard.core.logging import DECISION_LOGGER, setup_logging


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield
    for name in (None, DECISION_LOGGER, "aiohttp"):
        lg = logging.getLogger(name)
        for h in list(lg.handlers):
            if h not in saved_handlers:
                h.close()
                lg.removeHandler(h)
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    logging.getLogger(DECISION_LOGGER).propagate = True
    logging.getLogger("aiohttp").setLevel(logging.NOTSET)
    structlog.reset_defaults()


class TestSetupLogging:
    def test_level_override(self) -> None:
        setup_logging(level="debug", config=LoggingConfig(level="WARNING"))
        assert logging.getLogger().level == logging.DEBUG

    def test_level_from_config(self) -> None:
        setup_logging(config=LoggingConfig(level="WARNING", format="console"))
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1

    def test_logger_levels(self) -> None:
        setup_logging(config=LoggingConfig(logger_levels={"aiohttp": "error"}))
        assert logging.getLogger("aiohttp").level == logging.ERROR

    def test_decision_log_propagates_by_default(self) -> None:
        setup_logging(config=LoggingConfig())
        decision = logging.getLogger(DECISION_LOGGER)
        assert decision.propagate is True
        assert decision.handlers == []

    def test_decision_log_file(self, tmp_path: Path) -> None:
        path = tmp_path / "decisions.jsonl"
        setup_logging(config=LoggingConfig(format="console", decision_log_path=str(path)))
        decision = logging.getLogger(DECISION_LOGGER)
        assert decision.propagate is False

        structlog.get_logger(DECISION_LOGGER).info("decision", outcome="sent", key="ns/job/StuckRun")
        for h in decision.handlers:
            h.flush()

        record = json.loads(path.read_text().strip().splitlines()[-1])
        assert record["event"] == "decision"
        assert record["outcome"] == "sent"
        assert record["key"] == "ns/job/StuckRun"
