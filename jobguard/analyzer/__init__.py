"""Execution statistics and SLA analysis."""

from jobguard.analyzer.exceptions import (
    AnalyzerError,
    ConfigurationError,
    HistoryUnavailableError,
    InsufficientHistoryError,
)
from jobguard.analyzer.sla import SLAAnalyzer
from jobguard.analyzer.types import RegressionResult, SLAResult, Violation, ViolationType

__all__ = [
    "AnalyzerError",
    "ConfigurationError",
    "HistoryUnavailableError",
    "InsufficientHistoryError",
    "RegressionResult",
    "SLAAnalyzer",
    "SLAResult",
    "Violation",
    "ViolationType",
]
