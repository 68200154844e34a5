"""
Registry of AI agents callable from ``ai_agent_call`` steps.

Each agent carries its persona (role, goal, rules) and a memory document.
After every call the interaction is appended to
``memory["recent_interactions"]``, keeping only the newest entries.
"""

from __future__ import annotations

import asyncio
import inspect
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Mapping, MutableMapping, Optional, Protocol, Union

from shared.config import config
from shared.logger import get_logger
from blueprint_engine.errors import AgentCallError

if TYPE_CHECKING:
    from blueprint_engine.runtime.context import ExecutionContext

logger = get_logger("blueprint_engine.registry.agents")

MEMORY_CONTEXT = "automation_execution"


@dataclass(frozen=True)
class AgentInvocation:
    agent_id: str
    system_prompt: str
    prompt: str
    llm_provider: str
    model: str
    variables: Mapping[str, Any] = field(default_factory=dict)


AgentHandler = Callable[[AgentInvocation], Union[Any, Awaitable[Any]]]


@dataclass
class AgentDefinition:
    agent_id: str
    name: str
    handler: AgentHandler
    role: str = ""
    goal: str = ""
    rules: str = ""
    memory: Dict[str, Any] = field(default_factory=dict)
    llm_provider: str = "OpenAI"
    model: str = "gpt-4o-mini"


class AgentNotFoundError(KeyError):
    """Raised when attempting to access an unknown agent."""


class AgentCaller(Protocol):
    async def call(self, agent_id: str, prompt: str, ctx: "ExecutionContext") -> Any:
        ...


def build_agent_system_prompt(agent: AgentDefinition) -> str:
    memory = json.dumps(agent.memory, default=str)
    return (
        f"You are {agent.name}, an AI agent with the following configuration:\n\n"
        f"Role: {agent.role}\n"
        f"Goal: {agent.goal}\n"
        f"Rules: {agent.rules}\n"
        f"Memory Context: {memory}\n\n"
        "You are part of an automation workflow. Provide precise, actionable "
        "responses that help achieve the automation's objectives."
    )


class AgentRegistry:
    """
    Stores agent definitions and performs calls on behalf of the engine.

    Memory updates are serialized with an asyncio lock because runs share the
    registry.
    """

    def __init__(
        self,
        initial: MutableMapping[str, AgentDefinition] | None = None,
        *,
        memory_limit: Optional[int] = None,
    ) -> None:
        self._agents: Dict[str, AgentDefinition] = dict(initial or {})
        self.memory_limit = memory_limit if memory_limit is not None else config.agent_memory_limit
        self._lock = asyncio.Lock()

    def register(self, agent: AgentDefinition) -> None:
        self._agents[agent.agent_id] = agent

    def get(self, agent_id: str) -> AgentDefinition:
        try:
            return self._agents[agent_id]
        except KeyError as exc:
            raise AgentNotFoundError(f"Agent '{agent_id}' is not registered") from exc

    def maybe_get(self, agent_id: str) -> Optional[AgentDefinition]:
        return self._agents.get(agent_id)

    def has(self, agent_id: str) -> bool:
        return agent_id in self._agents

    async def call(self, agent_id: str, prompt: str, ctx: "ExecutionContext") -> Any:
        agent = self.maybe_get(agent_id)
        if agent is None:
            raise AgentCallError(f"AI agent '{agent_id}' not found")

        invocation = AgentInvocation(
            agent_id=agent_id,
            system_prompt=build_agent_system_prompt(agent),
            prompt=prompt,
            llm_provider=agent.llm_provider,
            model=agent.model,
            variables=dict(ctx.variables),
        )
        logger.info(f"Calling agent {agent.name} ({agent_id}) for run {ctx.run_id}")
        try:
            if inspect.iscoroutinefunction(agent.handler):
                output = await agent.handler(invocation)
            else:
                output = await asyncio.to_thread(agent.handler, invocation)
            if inspect.isawaitable(output):
                output = await output
        except AgentCallError:
            raise
        except Exception as exc:
            raise AgentCallError(f"AI Agent call failed: {exc}") from exc

        await self._remember(agent, prompt, output)
        return output

    async def _remember(self, agent: AgentDefinition, prompt: str, output: Any) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "input": prompt,
            "output": output,
            "context": MEMORY_CONTEXT,
        }
        async with self._lock:
            interactions = list(agent.memory.get("recent_interactions", []))
            interactions.append(entry)
            if self.memory_limit > 0:
                interactions = interactions[-self.memory_limit:]
            agent.memory = {**agent.memory, "recent_interactions": interactions}
