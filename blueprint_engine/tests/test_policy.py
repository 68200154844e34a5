from __future__ import annotations

import pytest

from shared.config import EngineConfig
from blueprint_engine.runtime.policy import ErrorPolicyEngine, PolicyDecision
from blueprint_engine.schema.models import ActionStep


def _step(on_error: str | None = None) -> ActionStep:
    payload = {"id": "a", "type": "action", "action": {"integration": "system", "method": "noop"}}
    if on_error:
        payload["on_error"] = on_error
    return ActionStep.model_validate(payload)


def test_default_policy_is_stop() -> None:
    policy = ErrorPolicyEngine()

    assert policy.decide(_step(), "boom", 1) == PolicyDecision.STOP


def test_continue_is_upgraded_inside_fail_fast_scope() -> None:
    policy = ErrorPolicyEngine()

    assert policy.decide(_step("continue"), "boom", 1) == PolicyDecision.CONTINUE
    assert policy.decide(_step("continue"), "boom", 1, fail_fast=True) == PolicyDecision.STOP


def test_retry_is_bounded_then_stops() -> None:
    policy = ErrorPolicyEngine(max_retries=2)

    decisions = [policy.decide(_step("retry"), "boom", attempt) for attempt in range(1, 5)]

    assert decisions == [PolicyDecision.RETRY, PolicyDecision.RETRY, PolicyDecision.STOP, PolicyDecision.STOP]


def test_backoff_is_exponential() -> None:
    policy = ErrorPolicyEngine()

    assert [policy.backoff(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]
    assert policy.backoff(0) == 0.0


def test_from_config_reads_settings() -> None:
    settings = EngineConfig(
        default_on_error="continue",
        step_retry_max_attempts=1,
        step_retry_backoff_seconds=0.5,
        step_retry_backoff_multiplier=3,
    )

    policy = ErrorPolicyEngine.from_config(settings)

    assert policy.decide(_step(), "boom", 1) == PolicyDecision.CONTINUE
    assert policy.decide(_step("retry"), "boom", 2) == PolicyDecision.STOP
    assert policy.backoff(2) == pytest.approx(1.5)


def test_negative_retry_bound_rejected() -> None:
    with pytest.raises(ValueError):
        ErrorPolicyEngine(max_retries=-1)


def test_attempt_numbers_start_at_one() -> None:
    with pytest.raises(ValueError):
        ErrorPolicyEngine().decide(_step("retry"), "boom", 0)
