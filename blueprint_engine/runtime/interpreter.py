"""
Step interpreter: walks a blueprint's step tree against one ExecutionContext.

Every step kind is handled inline with the same dispatch logic, so nested
scopes (condition branches, loop bodies, retry bodies, fallback paths) behave
exactly like the top-level step list. Failures settle into a StepOutcome and
are routed through the ErrorPolicyEngine; run-level interruptions
(cancellation, run timeout, internal faults) propagate as exceptions.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from shared.config import EngineConfig
from shared.logger import bind_run, get_logger
from blueprint_engine.errors import (
    ActionInvocationError,
    ActionTimeoutError,
    AgentCallError,
    CancellationError,
    CredentialError,
    InternalError,
    RunTimeoutError,
    StepError,
)
from blueprint_engine.expr.evaluator import (
    evaluate_condition,
    evaluate_sequence,
    evaluate_value,
    render_template,
)
from blueprint_engine.registry.agent_registry import AgentCaller
from blueprint_engine.registry.credentials import Credential, CredentialResolver
from blueprint_engine.registry.integration_registry import ActionInvoker
from blueprint_engine.runtime.context import ExecutionContext
from blueprint_engine.runtime.policy import ErrorPolicyEngine, PolicyDecision
from blueprint_engine.runtime.recorder import RunRecorder
from blueprint_engine.runtime.results import ScopeOutcome, ScopeResult, StepOutcome, StepResult, StepStatus
from blueprint_engine.schema.models import (
    ActionStep,
    AIAgentCallStep,
    ConditionStep,
    DelayStep,
    ErrorPolicy,
    FallbackStep,
    LoopStep,
    RetryStep,
    Step,
)

logger = get_logger("blueprint_engine.runtime.interpreter")

_RUN_INTERRUPTS = (CancellationError, RunTimeoutError, InternalError)


@dataclass(frozen=True)
class RuntimeServices:
    credential_resolver: CredentialResolver
    action_invoker: ActionInvoker
    agent_caller: Optional[AgentCaller] = None


class StepInterpreter:
    def __init__(
        self,
        services: RuntimeServices,
        recorder: RunRecorder,
        policy: ErrorPolicyEngine,
        settings: EngineConfig,
    ) -> None:
        self.services = services
        self.recorder = recorder
        self.policy = policy
        self.settings = settings
        self.log = bind_run(logger, recorder.run_id)

    # ------------------------------------------------------------------
    # Scopes
    # ------------------------------------------------------------------
    async def execute(
        self,
        steps: Sequence[Step],
        ctx: ExecutionContext,
        *,
        fail_fast: bool = False,
    ) -> ScopeResult:
        """
        Run ``steps`` in order.

        Returns ABORTED when a failed step's policy resolved to STOP; the
        remaining siblings are recorded SKIPPED. Cancellation, run timeout and
        internal faults are raised after the remaining siblings are recorded.
        """

        had_failures = False
        last_error: Optional[str] = None
        for index, step in enumerate(steps):
            try:
                self._check_boundary(ctx, step)
            except (CancellationError, RunTimeoutError):
                self._skip(steps[index:])
                raise

            try:
                outcome, decision = await self._run_with_policy(step, ctx, fail_fast=fail_fast)
            except _RUN_INTERRUPTS as exc:
                self.recorder.record(
                    StepResult(step_id=step.id, status=StepStatus.FAILED, error=str(exc)),
                    report_error=False,
                )
                self._skip(steps[index + 1:])
                raise

            if outcome.status == StepStatus.FAILED:
                had_failures = True
                last_error = outcome.error
                if decision == PolicyDecision.STOP:
                    self.log.warning(f"Step {step.id} failed, aborting scope: {outcome.error}")
                    self._skip(steps[index + 1:])
                    return ScopeResult(ScopeOutcome.ABORTED, had_failures=True, error=outcome.error)
                self.log.warning(f"Step {step.id} failed, continuing: {outcome.error}")
            elif outcome.had_failures:
                had_failures = True

        return ScopeResult(ScopeOutcome.COMPLETED, had_failures=had_failures, error=last_error)

    def _skip(self, steps: Sequence[Step]) -> None:
        for step in steps:
            self.recorder.record_skipped(step.id)

    def _check_boundary(self, ctx: ExecutionContext, step: Step) -> None:
        if ctx.cancelled:
            raise CancellationError(f"Run cancelled before step '{step.id}'")
        if ctx.deadline_exceeded:
            raise RunTimeoutError(f"Run exceeded its time budget before step '{step.id}'")

    # ------------------------------------------------------------------
    # Single step + shallow retry
    # ------------------------------------------------------------------
    async def _run_with_policy(
        self,
        step: Step,
        ctx: ExecutionContext,
        *,
        fail_fast: bool,
    ) -> tuple[StepOutcome, PolicyDecision]:
        retries = 0
        started = time.perf_counter()
        self.log.info(f"Executing step {step.id} ({step.type}): {step.label}")
        while True:
            outcome = await self._dispatch(step, ctx, fail_fast=fail_fast)
            if outcome.status != StepStatus.FAILED:
                decision = PolicyDecision.CONTINUE
                break
            decision = self.policy.decide(step, outcome.error, retries + 1, fail_fast=fail_fast)
            if decision != PolicyDecision.RETRY:
                break
            retries += 1
            delay = self.policy.backoff(retries)
            self.log.warning(
                f"Step {step.id} failed ({outcome.error}); retry {retries}/{self.policy.max_retries} in {delay}s"
            )
            await self._sleep(delay, ctx)
            if ctx.cancelled:
                raise CancellationError(f"Run cancelled while retrying step '{step.id}'")

        if outcome.status == StepStatus.SUCCEEDED and outcome.output is not None:
            ctx.record_output(step.id, outcome.output)
        self.recorder.record(
            StepResult(
                step_id=step.id,
                status=outcome.status,
                output=outcome.output,
                error=outcome.error,
                duration_ms=(time.perf_counter() - started) * 1000,
                attempts=retries + outcome.attempts,
            ),
            report_error=outcome.reports_error,
        )
        self.log.info(f"Step {step.id} finished with status {outcome.status.value}")
        return outcome, decision

    async def _dispatch(self, step: Step, ctx: ExecutionContext, *, fail_fast: bool) -> StepOutcome:
        try:
            if isinstance(step, ActionStep):
                return await self._run_action(step, ctx)
            if isinstance(step, ConditionStep):
                return await self._run_condition(step, ctx, fail_fast=fail_fast)
            if isinstance(step, LoopStep):
                return await self._run_loop(step, ctx, fail_fast=fail_fast)
            if isinstance(step, DelayStep):
                return await self._run_delay(step, ctx)
            if isinstance(step, AIAgentCallStep):
                return await self._run_agent_call(step, ctx)
            if isinstance(step, RetryStep):
                return await self._run_retry(step, ctx, fail_fast=fail_fast)
            if isinstance(step, FallbackStep):
                return await self._run_fallback(step, ctx, fail_fast=fail_fast)
        except StepError as exc:
            return StepOutcome(StepStatus.FAILED, error=str(exc))
        except _RUN_INTERRUPTS:
            raise
        except Exception as exc:
            self.log.exception(f"Unexpected fault in step {step.id}")
            raise InternalError(f"Internal error in step '{step.id}': {exc}") from exc
        raise InternalError(f"Unsupported step type '{step.type}'")

    # ------------------------------------------------------------------
    # Leaf steps
    # ------------------------------------------------------------------
    async def _run_action(self, step: ActionStep, ctx: ExecutionContext) -> StepOutcome:
        action = step.action
        credential = await self._resolve_credential(step, ctx)
        parameters = evaluate_value(ctx.evaluation_context(), dict(action.parameters))

        timeout = self.settings.action_timeout_seconds
        try:
            outcome = await asyncio.wait_for(
                self.services.action_invoker.invoke(action.integration, action.method, parameters, credential),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise ActionTimeoutError(
                f"Action {action.integration}.{action.method} timed out after {timeout}s"
            ) from None
        except StepError:
            raise
        except Exception as exc:
            raise ActionInvocationError(str(exc) or type(exc).__name__) from exc

        if not outcome.success:
            raise ActionInvocationError(outcome.error or f"Action {action.integration}.{action.method} failed")

        ctx.set_variable(f"{step.id}_result", outcome.output)
        return StepOutcome(StepStatus.SUCCEEDED, output=outcome.output)

    async def _resolve_credential(self, step: ActionStep, ctx: ExecutionContext) -> Optional[Credential]:
        integration = step.action.integration
        if integration.lower() in self.settings.credential_free_integrations:
            return None
        try:
            credential = await self.services.credential_resolver.resolve(
                ctx.automation_id,
                integration,
                credential_id=step.action.platform_credential_id,
            )
        except Exception as exc:
            raise CredentialError(f"Credential lookup for '{integration}' failed: {exc}") from exc
        if credential is None:
            raise CredentialError(f"No active credentials found for platform '{integration}'")
        return credential

    async def _run_delay(self, step: DelayStep, ctx: ExecutionContext) -> StepOutcome:
        seconds = step.delay.duration_seconds
        await self._sleep(seconds, ctx)
        if ctx.cancelled:
            raise CancellationError(f"Run cancelled during delay step '{step.id}'")
        return StepOutcome(StepStatus.SUCCEEDED, output={"duration_seconds": seconds})

    async def _run_agent_call(self, step: AIAgentCallStep, ctx: ExecutionContext) -> StepOutcome:
        caller = self.services.agent_caller
        config = step.ai_agent_call
        if caller is None:
            raise AgentCallError(f"No agent caller configured for agent '{config.agent_id}'")

        prompt = render_template(ctx.evaluation_context(), config.input_prompt)
        if not isinstance(prompt, str):
            prompt = str(prompt)

        timeout = self.settings.action_timeout_seconds
        try:
            output = await asyncio.wait_for(caller.call(config.agent_id, prompt, ctx), timeout=timeout)
        except asyncio.TimeoutError:
            raise ActionTimeoutError(f"AI agent '{config.agent_id}' timed out after {timeout}s") from None
        except StepError:
            raise
        except Exception as exc:
            raise AgentCallError(f"AI Agent call failed: {exc}") from exc

        ctx.set_variable(config.output_variable, output)
        return StepOutcome(StepStatus.SUCCEEDED, output=output)

    # ------------------------------------------------------------------
    # Compound steps
    # ------------------------------------------------------------------
    async def _run_condition(self, step: ConditionStep, ctx: ExecutionContext, *, fail_fast: bool) -> StepOutcome:
        config = step.condition
        eval_ctx = ctx.evaluation_context()
        for index, case in enumerate(config.cases):
            if evaluate_condition(eval_ctx, case.expression):
                scope = await self.execute(case.steps, ctx, fail_fast=fail_fast)
                return self._from_scope(scope, {"matched_case": index, "label": case.label})

        if config.default_steps is not None:
            scope = await self.execute(config.default_steps, ctx, fail_fast=fail_fast)
            return self._from_scope(scope, {"matched_case": None, "label": "default"})

        return StepOutcome(StepStatus.SKIPPED)

    async def _run_loop(self, step: LoopStep, ctx: ExecutionContext, *, fail_fast: bool) -> StepOutcome:
        items = evaluate_sequence(ctx.evaluation_context(), step.loop.array_source)
        tolerate = not fail_fast and self.policy.effective_policy(step) == ErrorPolicy.CONTINUE

        had_failures = False
        failed_iterations: list[int] = []
        last_error: Optional[str] = None
        for index, item in enumerate(items):
            scoped = ctx.child(
                {
                    "item": item,
                    "index": index,
                    "loop_current_item": item,
                    "loop_current_index": index,
                }
            )
            scope = await self.execute(step.loop.steps, scoped, fail_fast=fail_fast)
            had_failures = had_failures or scope.had_failures
            if scope.completed:
                continue
            if not tolerate:
                return StepOutcome(
                    StepStatus.FAILED,
                    output={"iterations": index + 1, "failed_iterations": failed_iterations + [index]},
                    error=scope.error,
                    reports_error=False,
                )
            failed_iterations.append(index)
            last_error = scope.error

        output: dict[str, Any] = {"iterations": len(items), "failed_iterations": failed_iterations}
        if failed_iterations:
            return StepOutcome(StepStatus.FAILED, output=output, error=last_error, reports_error=False)
        return StepOutcome(StepStatus.SUCCEEDED, output=output, had_failures=had_failures)

    async def _run_retry(self, step: RetryStep, ctx: ExecutionContext, *, fail_fast: bool) -> StepOutcome:
        config = step.retry
        last_error: Optional[str] = None
        for attempt in range(1, config.max_attempts + 1):
            scope = await self.execute(config.steps, ctx, fail_fast=fail_fast)
            if scope.clean:
                return StepOutcome(StepStatus.SUCCEEDED, output={"attempts": attempt}, attempts=attempt)
            last_error = scope.error
            self.log.warning(f"Retry step {step.id} attempt {attempt}/{config.max_attempts} failed: {last_error}")

        if config.on_retry_fail_steps is not None:
            scope = await self.execute(config.on_retry_fail_steps, ctx, fail_fast=fail_fast)
            outcome = self._from_scope(scope, {"attempts": config.max_attempts, "recovered": scope.completed})
            return StepOutcome(
                outcome.status,
                output=outcome.output,
                error=outcome.error,
                had_failures=outcome.had_failures,
                reports_error=outcome.reports_error,
                attempts=config.max_attempts,
            )

        return StepOutcome(
            StepStatus.FAILED,
            output={"attempts": config.max_attempts},
            error=f"Retry exhausted after {config.max_attempts} attempt(s): {last_error}",
            attempts=config.max_attempts,
        )

    async def _run_fallback(self, step: FallbackStep, ctx: ExecutionContext, *, fail_fast: bool) -> StepOutcome:
        config = step.fallback
        primary = await self.execute(config.primary_steps, ctx, fail_fast=True)
        if primary.clean:
            return StepOutcome(StepStatus.SUCCEEDED, output={"path": "primary"})

        self.log.warning(f"Primary path of {step.id} failed ({primary.error}); running fallback path")
        scope = await self.execute(config.fallback_steps, ctx, fail_fast=fail_fast)
        return self._from_scope(scope, {"path": "fallback"})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _from_scope(scope: ScopeResult, output: Any) -> StepOutcome:
        if scope.completed:
            return StepOutcome(StepStatus.SUCCEEDED, output=output, had_failures=scope.had_failures)
        return StepOutcome(StepStatus.FAILED, output=output, error=scope.error, reports_error=False)

    @staticmethod
    async def _sleep(seconds: float, ctx: ExecutionContext) -> None:
        """Sleep without blocking the loop; a cancellation request wakes it early."""
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(ctx.cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
