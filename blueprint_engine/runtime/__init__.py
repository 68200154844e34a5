from blueprint_engine.runtime.context import ExecutionContext, TriggerContext
from blueprint_engine.runtime.interpreter import RuntimeServices, StepInterpreter
from blueprint_engine.runtime.policy import ErrorPolicyEngine, PolicyDecision
from blueprint_engine.runtime.preflight import PreflightReport, preflight
from blueprint_engine.runtime.recorder import RunRecorder
from blueprint_engine.runtime.results import RunResult, RunStatus, StepResult, StepStatus

__all__ = [
    "ErrorPolicyEngine",
    "ExecutionContext",
    "PolicyDecision",
    "PreflightReport",
    "RunRecorder",
    "RunResult",
    "RunStatus",
    "RuntimeServices",
    "StepInterpreter",
    "StepResult",
    "StepStatus",
    "TriggerContext",
    "preflight",
]
