"""
Shared exception hierarchy for the blueprint engine.
"""


class BlueprintEngineError(Exception):
    """Base class for all engine related errors."""


class BlueprintValidationError(BlueprintEngineError):
    """Raised when a blueprint fails structural checks; no step has run yet."""


class StepError(BlueprintEngineError):
    """Base class for failures owned by a single step."""


class CredentialError(StepError):
    """Raised when no active credential exists for an action's platform."""


class ActionInvocationError(StepError):
    """Raised when an integration call returns a failure or raises."""


class AgentCallError(ActionInvocationError):
    """Raised when the agent-call collaborator fails or the agent is unknown."""


class ActionTimeoutError(StepError):
    """Raised when an action invocation exceeds its time bound."""


class CancellationError(BlueprintEngineError):
    """Raised when a run is stopped by an external request."""


class RunTimeoutError(BlueprintEngineError):
    """Raised when a run exceeds its overall time budget."""


class InternalError(BlueprintEngineError):
    """Unexpected engine fault. Always fails the step and terminates the run."""
