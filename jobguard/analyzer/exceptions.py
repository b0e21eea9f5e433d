"""Analyzer exceptions."""

from __future__ import annotations


class AnalyzerError(Exception):
    """Base exception for SLA analysis errors."""


class InsufficientHistoryError(AnalyzerError):
    """Not enough execution history to produce a signal yet."""


class HistoryUnavailableError(AnalyzerError):
    """The execution history store could not be read."""


class ConfigurationError(AnalyzerError):
    """The workload's monitoring configuration cannot be evaluated."""
