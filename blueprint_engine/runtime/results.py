"""Models and enums for step and run results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StepStatus(str, Enum):
    """Final status of a step."""

    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ScopeOutcome(str, Enum):
    COMPLETED = "COMPLETED"
    ABORTED = "ABORTED"


class StepResult(BaseModel):
    """Result of executing a single step."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    status: StepStatus
    output: Optional[Any] = None
    error: Optional[str] = None
    duration_ms: float = 0.0
    attempts: int = 1


class RunResult(BaseModel):
    """Result of executing a complete blueprint; the unit returned to callers."""

    run_id: str
    automation_id: str
    status: RunStatus
    success: bool
    duration_ms: float
    results: List[StepResult] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    trigger: Optional[Dict[str, Any]] = None
    started_at: datetime
    finished_at: datetime

    def result_for(self, step_id: str) -> Optional[StepResult]:
        """Return the last recorded result for ``step_id``."""
        for result in reversed(self.results):
            if result.step_id == step_id:
                return result
        return None

    def results_for(self, step_id: str) -> List[StepResult]:
        return [result for result in self.results if result.step_id == step_id]


@dataclass(frozen=True)
class ScopeResult:
    """
    How a walked step array settled. ``had_failures`` is true when any step in
    the scope (or in a nested scope that was allowed to continue) ended FAILED,
    even if the scope itself completed.
    """

    outcome: ScopeOutcome
    had_failures: bool = False
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.outcome == ScopeOutcome.COMPLETED

    @property
    def clean(self) -> bool:
        return self.completed and not self.had_failures


@dataclass(frozen=True)
class StepOutcome:
    """Settled status of one step, before it is written to the recorder."""

    status: StepStatus
    output: Any = None
    error: Optional[str] = None
    had_failures: bool = False
    # False when the error was already reported by a nested step
    reports_error: bool = True
    attempts: int = 1
