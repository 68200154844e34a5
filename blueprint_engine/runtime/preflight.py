"""
Readiness check run before an automation is executed.

Walks the whole step tree and reports which platforms lack an active
credential and which agents are unknown. Nothing is executed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional

from shared.config import EngineConfig, config as default_config
from shared.logger import get_logger
from blueprint_engine.registry.agent_registry import AgentRegistry
from blueprint_engine.registry.credentials import CredentialResolver
from blueprint_engine.schema.models import ActionStep, AIAgentCallStep, Blueprint, iter_steps
from blueprint_engine.schema.parse import parse_blueprint

logger = get_logger("blueprint_engine.runtime.preflight")


@dataclass
class PreflightReport:
    can_execute: bool
    required_platforms: List[str] = field(default_factory=list)
    missing_credentials: List[str] = field(default_factory=list)
    missing_agents: List[str] = field(default_factory=list)
    message: str = ""


def required_platforms(blueprint: Blueprint, settings: EngineConfig | None = None) -> List[str]:
    settings = settings or default_config
    platforms: List[str] = []
    for step in iter_steps(blueprint.steps):
        if not isinstance(step, ActionStep):
            continue
        platform = step.action.integration.lower()
        if platform in settings.credential_free_integrations or platform in platforms:
            continue
        platforms.append(platform)
    return platforms


def required_agents(blueprint: Blueprint) -> List[str]:
    agents: List[str] = []
    for step in iter_steps(blueprint.steps):
        if isinstance(step, AIAgentCallStep) and step.ai_agent_call.agent_id not in agents:
            agents.append(step.ai_agent_call.agent_id)
    return agents


async def preflight(
    automation_id: str,
    blueprint: Any,
    resolver: CredentialResolver,
    *,
    agent_registry: Optional[AgentRegistry] = None,
    settings: EngineConfig | None = None,
) -> PreflightReport:
    """
    Report whether ``blueprint`` can run for ``automation_id``.

    Agents are only checked when an ``agent_registry`` is supplied.
    """

    parsed = parse_blueprint(blueprint)
    platforms = required_platforms(parsed, settings)

    missing_credentials: List[str] = []
    for platform in platforms:
        if await resolver.resolve(automation_id, platform) is None:
            missing_credentials.append(platform)

    missing_agents: List[str] = []
    if agent_registry is not None:
        missing_agents = [agent_id for agent_id in required_agents(parsed) if not agent_registry.has(agent_id)]

    can_execute = not missing_credentials and not missing_agents
    if can_execute:
        message = "Automation is ready for execution"
    else:
        problems = []
        if missing_credentials:
            problems.append(f"Missing credentials: {', '.join(missing_credentials)}")
        if missing_agents:
            problems.append(f"Unknown agents: {', '.join(missing_agents)}")
        message = f"Cannot execute: {'; '.join(problems)}"

    logger.info(f"Preflight for automation {automation_id}: {message}")
    return PreflightReport(
        can_execute=can_execute,
        required_platforms=platforms,
        missing_credentials=missing_credentials,
        missing_agents=missing_agents,
        message=message,
    )
