"""
Per-run execution state.

An ExecutionContext is created when a trigger fires and is owned by exactly
one run. Loop iterations work on scoped children that share the run's
variables and step outputs but layer their own local bindings on top.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from blueprint_engine.expr.evaluator import EvaluationContext


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TriggerContext(BaseModel):
    """Normalized trigger event handed to the engine by trigger ingestion."""

    trigger_type: str = "manual"
    triggered_by: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
    payload: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class _RunState:
    variables: Dict[str, Any]
    outputs: Dict[str, Any] = field(default_factory=dict)
    output_log: List[Tuple[str, Any]] = field(default_factory=list)


class ExecutionContext:
    def __init__(
        self,
        automation_id: str,
        run_id: str,
        trigger: TriggerContext,
        variables: Mapping[str, Any] | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
        deadline: float | None = None,
    ) -> None:
        self.automation_id = automation_id
        self.run_id = run_id
        self.trigger = trigger
        self.cancel_event = cancel_event or asyncio.Event()
        self.deadline = deadline
        self.started_at = time.monotonic()
        self._state = _RunState(variables=dict(variables or {}))
        self._locals: Mapping[str, Any] = MappingProxyType({})

    @classmethod
    def for_run(
        cls,
        automation_id: str,
        run_id: str,
        trigger: TriggerContext,
        blueprint_variables: Mapping[str, Any] | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
        timeout_seconds: float | None = None,
    ) -> "ExecutionContext":
        """
        Seed variables in order: blueprint variables, trigger payload keys,
        then ``trigger`` holding the whole trigger context.
        """

        variables: Dict[str, Any] = dict(blueprint_variables or {})
        variables.update(trigger.payload)
        variables["trigger"] = trigger.model_dump(mode="json")
        deadline = time.monotonic() + timeout_seconds if timeout_seconds else None
        return cls(
            automation_id,
            run_id,
            trigger,
            variables,
            cancel_event=cancel_event,
            deadline=deadline,
        )

    def child(self, bindings: Mapping[str, Any]) -> "ExecutionContext":
        """Scoped copy with extra local bindings; run state stays shared."""

        scoped = ExecutionContext.__new__(ExecutionContext)
        scoped.__dict__.update(self.__dict__)
        merged = dict(self._locals)
        merged.update(bindings)
        scoped._locals = MappingProxyType(merged)
        return scoped

    # ------------------------------------------------------------------
    # Variables & outputs
    # ------------------------------------------------------------------
    @property
    def variables(self) -> Mapping[str, Any]:
        return MappingProxyType(self._state.variables)

    @property
    def locals(self) -> Mapping[str, Any]:
        return self._locals

    @property
    def outputs(self) -> Mapping[str, Any]:
        return MappingProxyType(self._state.outputs)

    @property
    def output_log(self) -> List[Tuple[str, Any]]:
        return list(self._state.output_log)

    def set_variable(self, name: str, value: Any) -> None:
        self._state.variables[name] = value

    def record_output(self, step_id: str, output: Any) -> None:
        self._state.outputs[step_id] = output
        self._state.output_log.append((step_id, output))

    def evaluation_context(self) -> EvaluationContext:
        return EvaluationContext(
            variables=MappingProxyType(self._state.variables),
            locals=self._locals,
            steps=MappingProxyType(self._state.outputs),
        )

    # ------------------------------------------------------------------
    # Clock & cancellation
    # ------------------------------------------------------------------
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def deadline_exceeded(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline
