"""
Destinations for finished RunResults.

The engine hands every RunResult to its sinks and then to its notifiers.
A failing sink or notifier is logged by the engine and never changes the
result returned to the caller.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Protocol, Tuple

from shared.database.automation_models import AutomationRun, AutomationRunStatus
from shared.logger import get_logger
from blueprint_engine.runtime.results import RunResult

logger = get_logger("blueprint_engine.persistence.sinks")


class RunSink(Protocol):
    async def save(self, automation_id: str, run_id: str, result: RunResult) -> None:
        ...


class RunNotifier(Protocol):
    async def notify(self, automation_id: str, run_id: str, result: RunResult) -> None:
        ...


class InMemoryRunSink:
    def __init__(self) -> None:
        self._runs: Dict[Tuple[str, str], RunResult] = {}
        self._lock = asyncio.Lock()

    async def save(self, automation_id: str, run_id: str, result: RunResult) -> None:
        async with self._lock:
            self._runs[(automation_id, run_id)] = result

    def get(self, automation_id: str, run_id: str) -> Optional[RunResult]:
        return self._runs.get((automation_id, run_id))

    def list_runs(self, automation_id: str) -> List[RunResult]:
        return [result for (owner, _), result in self._runs.items() if owner == automation_id]


class TortoiseRunSink:
    """Writes one ``automation_runs`` row per run (upserted by run id)."""

    async def save(self, automation_id: str, run_id: str, result: RunResult) -> None:
        details = {
            "results": [step.model_dump(mode="json") for step in result.results],
        }
        await AutomationRun.update_or_create(
            run_id=run_id,
            defaults={
                "automation_id": automation_id,
                "status": AutomationRunStatus(result.status.value),
                "success": result.success,
                "duration_ms": result.duration_ms,
                "trigger_data": result.trigger,
                "details_log": details,
                "errors": list(result.errors),
                "started_at": result.started_at,
                "finished_at": result.finished_at,
            },
        )
        logger.info(f"Persisted run {run_id} for automation {automation_id} ({result.status.value})")
