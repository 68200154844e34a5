from blueprint_engine.schema.models import (
    ActionStep,
    AIAgentCallStep,
    Blueprint,
    ConditionStep,
    DelayStep,
    ErrorPolicy,
    FallbackStep,
    LoopStep,
    RetryStep,
    Step,
    Trigger,
    TriggerType,
    iter_steps,
    nested_scopes,
)
from blueprint_engine.schema.parse import parse_blueprint, validate_unique_step_ids

__all__ = [
    "ActionStep",
    "AIAgentCallStep",
    "Blueprint",
    "ConditionStep",
    "DelayStep",
    "ErrorPolicy",
    "FallbackStep",
    "LoopStep",
    "RetryStep",
    "Step",
    "Trigger",
    "TriggerType",
    "iter_steps",
    "nested_scopes",
    "parse_blueprint",
    "validate_unique_step_ids",
]
