"""
Public run entrypoint: validates a blueprint, executes it against a fresh
ExecutionContext and publishes the RunResult.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Mapping, Optional, Sequence

from pydantic import ValidationError

from shared.config import EngineConfig, config as default_config
from shared.logger import bind_run, get_logger
from blueprint_engine.errors import BlueprintValidationError, CancellationError, InternalError, RunTimeoutError
from blueprint_engine.persistence.sinks import RunNotifier, RunSink
from blueprint_engine.runtime.context import ExecutionContext, TriggerContext
from blueprint_engine.runtime.interpreter import RuntimeServices, StepInterpreter
from blueprint_engine.runtime.policy import ErrorPolicyEngine
from blueprint_engine.runtime.recorder import RunRecorder
from blueprint_engine.runtime.results import RunResult
from blueprint_engine.schema.models import Blueprint
from blueprint_engine.schema.parse import parse_blueprint

logger = get_logger("blueprint_engine.runtime.engine")


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex}"


def coerce_trigger(trigger_context: Any) -> TriggerContext:
    if trigger_context is None:
        return TriggerContext()
    if isinstance(trigger_context, TriggerContext):
        return trigger_context
    if isinstance(trigger_context, Mapping):
        try:
            return TriggerContext.model_validate(dict(trigger_context))
        except ValidationError as exc:
            raise BlueprintValidationError(f"Invalid trigger context: {exc}") from exc
    raise BlueprintValidationError(
        f"Unsupported trigger context type {type(trigger_context).__name__}; expected TriggerContext or Mapping"
    )


class RunHandle:
    """Handle on a run started in the background with AutomationEngine.start()."""

    def __init__(self, run_id: str, task: "asyncio.Task[RunResult]", cancel_event: asyncio.Event) -> None:
        self.run_id = run_id
        self._task = task
        self._cancel_event = cancel_event

    def cancel(self) -> None:
        """Request cancellation; it takes effect at the next step boundary."""
        self._cancel_event.set()

    @property
    def done(self) -> bool:
        return self._task.done()

    async def wait(self) -> RunResult:
        return await asyncio.shield(self._task)


class AutomationEngine:
    """
    Executes blueprints. One engine can serve many concurrent runs; each run
    gets its own context, recorder and interpreter.
    """

    def __init__(
        self,
        services: RuntimeServices,
        *,
        sinks: Sequence[RunSink] = (),
        notifiers: Sequence[RunNotifier] = (),
        settings: EngineConfig | None = None,
        policy: ErrorPolicyEngine | None = None,
    ) -> None:
        self.services = services
        self.sinks = list(sinks)
        self.notifiers = list(notifiers)
        self.settings = settings or default_config
        self.policy = policy or ErrorPolicyEngine.from_config(self.settings)

    async def execute_automation(
        self,
        automation_id: str,
        blueprint: Any,
        trigger_context: Any = None,
        *,
        run_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RunResult:
        """
        Run ``blueprint`` to completion and return its RunResult.

        Raises BlueprintValidationError for malformed input before any step
        runs. Step failures, cancellation and timeouts are reported through
        the RunResult instead of being raised.
        """

        parsed = parse_blueprint(blueprint)
        trigger = coerce_trigger(trigger_context)
        return await self._run(automation_id, parsed, trigger, run_id or new_run_id(), cancel_event or asyncio.Event())

    def start(
        self,
        automation_id: str,
        blueprint: Any,
        trigger_context: Any = None,
        *,
        run_id: Optional[str] = None,
    ) -> RunHandle:
        """
        Schedule a run on the current event loop and return a handle to it.
        Validation happens here, synchronously.
        """

        parsed = parse_blueprint(blueprint)
        trigger = coerce_trigger(trigger_context)
        run_id = run_id or new_run_id()
        cancel_event = asyncio.Event()
        task = asyncio.create_task(self._run(automation_id, parsed, trigger, run_id, cancel_event))
        return RunHandle(run_id, task, cancel_event)

    async def _run(
        self,
        automation_id: str,
        parsed: Blueprint,
        trigger: TriggerContext,
        run_id: str,
        cancel_event: asyncio.Event,
    ) -> RunResult:
        timeout = self.settings.run_timeout_seconds if self.settings.is_run_timeout_enabled else None
        ctx = ExecutionContext.for_run(
            automation_id,
            run_id,
            trigger,
            parsed.variables,
            cancel_event=cancel_event,
            timeout_seconds=timeout,
        )
        recorder = RunRecorder(automation_id, run_id)
        interpreter = StepInterpreter(self.services, recorder, self.policy, self.settings)

        log = bind_run(logger, run_id)
        log.info(f"Starting automation {automation_id} ({len(parsed.steps)} top-level steps)")
        completed = False
        cancelled = False
        try:
            scope = await interpreter.execute(parsed.steps, ctx)
            completed = scope.completed
            if ctx.cancelled:
                raise CancellationError("Run cancelled while its last step was in flight")
        except CancellationError as exc:
            cancelled = True
            recorder.add_error(f"CancellationError: {exc}")
        except RunTimeoutError as exc:
            recorder.add_error(f"RunTimeoutError: {exc}")
        except InternalError as exc:
            recorder.add_error(f"InternalError: {exc}")

        result = recorder.finalize(
            completed=completed,
            cancelled=cancelled,
            trigger=trigger.model_dump(mode="json"),
        )
        log.info(
            f"Automation {automation_id} finished: {result.status.value} "
            f"in {result.duration_ms:.1f}ms ({len(result.errors)} error(s))"
        )
        await self._publish(automation_id, run_id, result)
        return result

    async def _publish(self, automation_id: str, run_id: str, result: RunResult) -> None:
        for sink in self.sinks:
            try:
                await sink.save(automation_id, run_id, result)
            except Exception:
                logger.exception(f"Failed to persist run {run_id} with {type(sink).__name__}")
        for notifier in self.notifiers:
            try:
                await notifier.notify(automation_id, run_id, result)
            except Exception:
                logger.exception(f"Notifier {type(notifier).__name__} failed for run {run_id}")
