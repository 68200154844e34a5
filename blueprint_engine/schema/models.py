"""
Pydantic models describing the automation blueprint.

A blueprint is authored upstream (by users or the blueprint generator) and
handed to the engine read-only, so every model here is frozen. Unknown keys
that upstream tooling attaches for diagrams (``platforms``, ``test_payloads``,
``originalWorkflowData``...) are ignored rather than rejected.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterator, List, Literal, Optional, Union, Annotated

from pydantic import BaseModel, Field, ConfigDict, model_validator


class BlueprintModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )


class ErrorPolicy(str, Enum):
    CONTINUE = "continue"
    STOP = "stop"
    RETRY = "retry"


# -----------------------------
# Trigger
# -----------------------------
class TriggerType(str, Enum):
    manual = "manual"
    scheduled = "scheduled"
    webhook = "webhook"
    platform = "platform"


class Trigger(BlueprintModel):
    type: TriggerType = TriggerType.manual
    cron_expression: Optional[str] = None  # scheduled
    webhook_endpoint: Optional[str] = None  # webhook
    webhook_secret: Optional[str] = None  # webhook
    platform: Optional[str] = None  # platform
    integration: Optional[str] = None  # alias for platform


# -----------------------------
# Step payloads
# -----------------------------
class ActionConfig(BlueprintModel):
    integration: str = Field(min_length=1)
    method: str = Field(min_length=1)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    platform_credential_id: Optional[str] = None


class ConditionCase(BlueprintModel):
    label: str = ""
    expression: str = Field(min_length=1)
    steps: List["Step"]


class ConditionConfig(BlueprintModel):
    expression: Optional[str] = None
    cases: List[ConditionCase] = Field(default_factory=list)
    default_steps: Optional[List["Step"]] = None

    @model_validator(mode="before")
    @classmethod
    def _upgrade_if_true_if_false(cls, data: Any) -> Any:
        # Older blueprints describe a two-way branch as expression/if_true/if_false.
        if not isinstance(data, dict) or data.get("cases"):
            return data
        if "if_true" not in data and "if_false" not in data:
            return data
        upgraded = {k: v for k, v in data.items() if k not in {"if_true", "if_false"}}
        expression = data.get("expression")
        if not expression:
            raise ValueError("condition with if_true/if_false requires an expression")
        upgraded["cases"] = [
            {"label": "true", "expression": expression, "steps": data.get("if_true") or []}
        ]
        if data.get("if_false") is not None:
            upgraded["default_steps"] = data["if_false"]
        return upgraded

    @model_validator(mode="after")
    def _check_has_branches(self) -> "ConditionConfig":
        if not self.cases and self.default_steps is None:
            raise ValueError("condition requires at least one case or default_steps")
        return self


class LoopConfig(BlueprintModel):
    array_source: str = Field(min_length=1)
    steps: List["Step"]


class DelayConfig(BlueprintModel):
    duration_seconds: float = Field(ge=0)


class AIAgentCallConfig(BlueprintModel):
    agent_id: str = Field(min_length=1)
    input_prompt: str
    output_variable: str = Field(min_length=1)
    is_recommended: bool = False


class RetryConfig(BlueprintModel):
    max_attempts: int = Field(ge=1)
    steps: List["Step"]
    on_retry_fail_steps: Optional[List["Step"]] = None


class FallbackConfig(BlueprintModel):
    primary_steps: List["Step"]
    fallback_steps: List["Step"]


# -----------------------------
# Steps
# -----------------------------
class StepBase(BlueprintModel):
    id: str = Field(min_length=1)
    name: Optional[str] = None
    type: str
    on_error: Optional[ErrorPolicy] = None
    ai_recommended: bool = False

    @property
    def label(self) -> str:
        return self.name or self.id


class ActionStep(StepBase):
    type: Literal["action"] = "action"
    action: ActionConfig


class ConditionStep(StepBase):
    type: Literal["condition"] = "condition"
    condition: ConditionConfig


class LoopStep(StepBase):
    type: Literal["loop"] = "loop"
    loop: LoopConfig


class DelayStep(StepBase):
    type: Literal["delay"] = "delay"
    delay: DelayConfig


class AIAgentCallStep(StepBase):
    type: Literal["ai_agent_call"] = "ai_agent_call"
    ai_agent_call: AIAgentCallConfig


class RetryStep(StepBase):
    type: Literal["retry"] = "retry"
    retry: RetryConfig


class FallbackStep(StepBase):
    type: Literal["fallback"] = "fallback"
    fallback: FallbackConfig


Step = Annotated[
    Union[ActionStep, ConditionStep, LoopStep, DelayStep, AIAgentCallStep, RetryStep, FallbackStep],
    Field(discriminator="type"),
]


class Blueprint(BlueprintModel):
    version: str = Field(default="1.0")
    description: Optional[str] = None
    trigger: Trigger = Field(default_factory=Trigger)
    steps: List[Step] = Field(default_factory=list)
    variables: Dict[str, Any] = Field(default_factory=dict)


ConditionCase.model_rebuild()
ConditionConfig.model_rebuild()
LoopConfig.model_rebuild()
RetryConfig.model_rebuild()
FallbackConfig.model_rebuild()
Blueprint.model_rebuild()


# -----------------------------
# Tree helpers
# -----------------------------
def nested_scopes(step: Step) -> List[List[Step]]:
    """Return every nested step array owned by ``step`` in declaration order."""

    if isinstance(step, ConditionStep):
        scopes = [case.steps for case in step.condition.cases]
        if step.condition.default_steps is not None:
            scopes.append(step.condition.default_steps)
        return scopes
    if isinstance(step, LoopStep):
        return [step.loop.steps]
    if isinstance(step, RetryStep):
        scopes = [step.retry.steps]
        if step.retry.on_retry_fail_steps is not None:
            scopes.append(step.retry.on_retry_fail_steps)
        return scopes
    if isinstance(step, FallbackStep):
        return [step.fallback.primary_steps, step.fallback.fallback_steps]
    return []


def iter_steps(steps: List[Step]) -> Iterator[Step]:
    """Depth-first walk over a step tree, parents before children."""

    for step in steps:
        yield step
        for scope in nested_scopes(step):
            yield from iter_steps(scope)
