"""Result types returned by the SLA analyzer."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class ViolationType(StrEnum):
    SUCCESS_RATE = "SuccessRate"
    MAX_DURATION = "MaxDuration"


class Violation(BaseModel):
    """A single SLA target that was not met."""

    type: ViolationType
    message: str
    current: float
    threshold: float


class SLAResult(BaseModel):
    """Outcome of an SLA check over the configured window."""

    passed: bool = True
    violations: list[Violation] = Field(default_factory=list)
    success_rate: float = 0.0
    min_required: float = 0.0
    total_runs: int = 0


class RegressionResult(BaseModel):
    """Comparison of recent P95 duration against the baseline window."""

    detected: bool = False
    baseline_p95: float = 0.0
    current_p95: float = 0.0
    percentage_increase: float = 0.0
    threshold: float = 0.0
    message: str = ""
