"""
Public entrypoint for executing automation blueprints.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional, Sequence

from shared.config import EngineConfig
from blueprint_engine.persistence.sinks import RunNotifier, RunSink
from blueprint_engine.runtime.engine import AutomationEngine
from blueprint_engine.runtime.interpreter import RuntimeServices
from blueprint_engine.runtime.results import RunResult


async def execute_automation(
    automation_id: str,
    blueprint: Any,
    trigger_context: Any,
    *,
    services: RuntimeServices,
    sinks: Sequence[RunSink] = (),
    notifiers: Sequence[RunNotifier] = (),
    settings: Optional[EngineConfig] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> RunResult:
    """
    Execute a blueprint once with a throwaway engine.
    """

    engine = AutomationEngine(services, sinks=sinks, notifiers=notifiers, settings=settings)
    return await engine.execute_automation(
        automation_id,
        blueprint,
        trigger_context,
        cancel_event=cancel_event,
    )


__all__ = ["AutomationEngine", "RuntimeServices", "RunResult", "execute_automation"]
