"""
In-memory registry of integration methods.

Each entry maps ``(integration, method)`` to a handler plus an optional JSON
schema for its parameters. RegistryActionInvoker turns the registry into an
ActionInvoker the engine can call.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, MutableMapping, Optional, Protocol, Tuple, Union

from shared.logger import get_logger
from blueprint_engine.registry.credentials import Credential
from blueprint_engine.schema.jsonschema_adapter import JsonSchema, compile_schema, parameter_errors

logger = get_logger("blueprint_engine.registry.integrations")


async def _call_handler(handler: Callable[..., Any], *args: Any) -> Any:
    """Coroutine handlers are awaited; plain functions run in a worker thread."""
    if inspect.iscoroutinefunction(handler):
        return await handler(*args)
    result = await asyncio.to_thread(handler, *args)
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass(frozen=True)
class ActionOutcome:
    """Normalized result of one integration call."""

    success: bool
    output: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, output: Any = None) -> "ActionOutcome":
        return cls(success=True, output=output)

    @classmethod
    def failed(cls, error: str) -> "ActionOutcome":
        return cls(success=False, error=error)


class ActionInvoker(Protocol):
    async def invoke(
        self,
        integration: str,
        method: str,
        parameters: Dict[str, Any],
        credential: Optional[Credential],
    ) -> ActionOutcome:
        ...


ActionHandler = Callable[
    [Dict[str, Any], Optional[Credential]],
    Union[Any, Awaitable[Any]],
]


@dataclass
class IntegrationMethod:
    integration: str
    method: str
    handler: ActionHandler
    input_schema: Optional[JsonSchema] = None
    description: str = ""

    @property
    def key(self) -> Tuple[str, str]:
        return (self.integration.lower(), self.method)

    @property
    def qualified_name(self) -> str:
        return f"{self.integration.lower()}.{self.method}"


class IntegrationNotFoundError(KeyError):
    """Raised when attempting to access an unknown integration method."""


class IntegrationRegistry:
    """
    Stores integration handlers and their parameter schemas.
    """

    def __init__(self, initial: MutableMapping[Tuple[str, str], IntegrationMethod] | None = None) -> None:
        self._methods: Dict[Tuple[str, str], IntegrationMethod] = dict(initial or {})

    def register(self, definition: IntegrationMethod) -> None:
        if definition.input_schema is not None:
            compile_schema(definition.input_schema, key=definition.qualified_name)
        self._methods[definition.key] = definition

    def get(self, integration: str, method: str) -> IntegrationMethod:
        try:
            return self._methods[(integration.lower(), method)]
        except KeyError as exc:
            raise IntegrationNotFoundError(
                f"Integration method '{integration}.{method}' is not registered"
            ) from exc

    def maybe_get(self, integration: str, method: str) -> Optional[IntegrationMethod]:
        return self._methods.get((integration.lower(), method))

    def integrations(self) -> Mapping[str, list[str]]:
        grouped: Dict[str, list[str]] = {}
        for integration, method in sorted(self._methods):
            grouped.setdefault(integration, []).append(method)
        return grouped


class RegistryActionInvoker:
    """ActionInvoker that dispatches to handlers held in an IntegrationRegistry."""

    def __init__(self, registry: IntegrationRegistry) -> None:
        self.registry = registry

    async def invoke(
        self,
        integration: str,
        method: str,
        parameters: Dict[str, Any],
        credential: Optional[Credential],
    ) -> ActionOutcome:
        definition = self.registry.maybe_get(integration, method)
        if definition is None:
            return ActionOutcome.failed(f"Integration method '{integration}.{method}' is not registered")

        if definition.input_schema is not None:
            errors = parameter_errors(definition.input_schema, parameters, key=definition.qualified_name)
            if errors:
                return ActionOutcome.failed(
                    f"Invalid parameters for {integration}.{method}: {'; '.join(errors)}"
                )

        try:
            result = await _call_handler(definition.handler, parameters, credential)
        except Exception as exc:
            logger.warning(f"Handler for {integration}.{method} raised: {exc}")
            return ActionOutcome.failed(str(exc) or type(exc).__name__)

        if isinstance(result, ActionOutcome):
            return result
        return ActionOutcome.ok(result)
