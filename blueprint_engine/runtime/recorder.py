"""
Append-only accumulator of step results for one run.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from blueprint_engine.runtime.results import RunResult, RunStatus, StepResult, StepStatus


class RunRecorder:
    def __init__(self, automation_id: str, run_id: str) -> None:
        self.automation_id = automation_id
        self.run_id = run_id
        self.started_at = datetime.now(timezone.utc)
        self._clock_start = time.perf_counter()
        self._results: List[StepResult] = []
        self._errors: List[str] = []

    @property
    def results(self) -> List[StepResult]:
        return list(self._results)

    @property
    def errors(self) -> List[str]:
        return list(self._errors)

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._clock_start) * 1000

    def record(self, result: StepResult, *, report_error: bool = True) -> StepResult:
        self._results.append(result)
        if report_error and result.status == StepStatus.FAILED and result.error:
            self._errors.append(result.error)
        return result

    def record_skipped(self, step_id: str) -> StepResult:
        return self.record(StepResult(step_id=step_id, status=StepStatus.SKIPPED))

    def add_error(self, message: str) -> None:
        self._errors.append(message)

    def finalize(
        self,
        *,
        completed: bool,
        cancelled: bool = False,
        trigger: Optional[Dict[str, Any]] = None,
    ) -> RunResult:
        """
        ``completed`` is true when the top-level scope ran to the end without
        an unresolved stop, timeout or internal fault.
        """

        if cancelled:
            status = RunStatus.CANCELLED
        elif completed:
            status = RunStatus.SUCCEEDED
        else:
            status = RunStatus.FAILED
        return RunResult(
            run_id=self.run_id,
            automation_id=self.automation_id,
            status=status,
            success=status == RunStatus.SUCCEEDED,
            duration_ms=self.elapsed_ms(),
            results=list(self._results),
            errors=list(self._errors),
            trigger=trigger,
            started_at=self.started_at,
            finished_at=datetime.now(timezone.utc),
        )
