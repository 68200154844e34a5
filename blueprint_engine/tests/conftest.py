from __future__ import annotations

import asyncio
from collections import Counter
from typing import Any, Dict, List

import pytest

from shared.config import EngineConfig
from blueprint_engine.registry.credentials import InMemoryCredentialResolver
from blueprint_engine.registry.integration_registry import (
    IntegrationMethod,
    IntegrationRegistry,
    RegistryActionInvoker,
)
from blueprint_engine.runtime.engine import AutomationEngine
from blueprint_engine.runtime.interpreter import RuntimeServices


@pytest.fixture
def settings() -> EngineConfig:
    return EngineConfig(
        action_timeout_seconds=1.0,
        run_timeout_seconds=0,
        step_retry_max_attempts=3,
        step_retry_backoff_seconds=0.0,
        DATABASE_URL=None,
    )


@pytest.fixture
def calls() -> List[Any]:
    return []


@pytest.fixture
def registry(calls: List[Any]) -> IntegrationRegistry:
    """
    ``system`` integration used across runtime tests:

    - record: appends ``tag`` to ``calls`` and echoes it back
    - fail: appends ``tag`` and raises ``message`` (default "boom")
    - flaky: fails until it has been called ``fail_times`` times for a tag
    - check: fails with "rejected <tag>" unless ``ok`` is truthy
    - slow: sleeps ``seconds`` before echoing
    """

    registry = IntegrationRegistry()
    attempts: Counter = Counter()

    def record(parameters: Dict[str, Any], credential) -> Dict[str, Any]:
        calls.append(parameters.get("tag"))
        return {"tag": parameters.get("tag")}

    def fail(parameters: Dict[str, Any], credential) -> None:
        calls.append(parameters.get("tag"))
        raise RuntimeError(parameters.get("message", "boom"))

    def flaky(parameters: Dict[str, Any], credential) -> Dict[str, Any]:
        tag = parameters.get("tag")
        calls.append(tag)
        attempts[tag] += 1
        if attempts[tag] <= parameters.get("fail_times", 1):
            raise RuntimeError(f"flaky {tag}")
        return {"tag": tag, "attempt": attempts[tag]}

    def check(parameters: Dict[str, Any], credential) -> Dict[str, Any]:
        tag = parameters.get("tag")
        calls.append(tag)
        if not parameters.get("ok"):
            raise RuntimeError(f"rejected {tag}")
        return {"tag": tag}

    async def slow(parameters: Dict[str, Any], credential) -> Dict[str, Any]:
        await asyncio.sleep(parameters.get("seconds", 0.5))
        calls.append(parameters.get("tag"))
        return {"tag": parameters.get("tag")}

    for name, handler in {
        "record": record,
        "fail": fail,
        "flaky": flaky,
        "check": check,
        "slow": slow,
    }.items():
        registry.register(IntegrationMethod("system", name, handler))
    return registry


@pytest.fixture
def resolver() -> InMemoryCredentialResolver:
    return InMemoryCredentialResolver()


@pytest.fixture
def services(registry: IntegrationRegistry, resolver: InMemoryCredentialResolver) -> RuntimeServices:
    return RuntimeServices(
        credential_resolver=resolver,
        action_invoker=RegistryActionInvoker(registry),
    )


@pytest.fixture
def engine(services: RuntimeServices, settings: EngineConfig) -> AutomationEngine:
    return AutomationEngine(services, settings=settings)
