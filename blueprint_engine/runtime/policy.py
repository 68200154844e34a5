"""
Error policy for failed steps.

Maps a step's ``on_error`` directive onto what the enclosing scope does next.
The shallow ``retry`` directive re-attempts the single step with exponential
backoff (1s, 2s, 4s by default) before falling back to ``stop``.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from shared.config import EngineConfig, config as default_config
from shared.logger import get_logger
from blueprint_engine.schema.models import ErrorPolicy, Step

logger = get_logger("blueprint_engine.runtime.policy")


class PolicyDecision(str, Enum):
    CONTINUE = "continue"
    STOP = "stop"
    RETRY = "retry"


class ErrorPolicyEngine:
    def __init__(
        self,
        *,
        default_policy: ErrorPolicy = ErrorPolicy.STOP,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        backoff_multiplier: float = 2.0,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.default_policy = default_policy
        self.max_retries = max_retries
        self.backoff_base = backoff_seconds
        self.backoff_multiplier = backoff_multiplier

    @classmethod
    def from_config(cls, settings: EngineConfig | None = None) -> "ErrorPolicyEngine":
        settings = settings or default_config
        return cls(
            default_policy=ErrorPolicy(settings.default_on_error),
            max_retries=settings.step_retry_max_attempts,
            backoff_seconds=settings.step_retry_backoff_seconds,
            backoff_multiplier=settings.step_retry_backoff_multiplier,
        )

    def effective_policy(self, step: Step) -> ErrorPolicy:
        return step.on_error or self.default_policy

    def decide(self, step: Step, error: Optional[str], attempt: int, *, fail_fast: bool = False) -> PolicyDecision:
        """
        Decide what happens after ``step`` failed.

        Args:
            step: The failed step
            error: Message of the failure
            attempt: 1-based number of the attempt that just failed
            fail_fast: True inside a scope where any failure must abort siblings

        Returns:
            CONTINUE, STOP or RETRY
        """
        if attempt < 1:
            raise ValueError("attempt is 1-based")
        policy = self.effective_policy(step)
        if policy == ErrorPolicy.RETRY:
            if attempt <= self.max_retries:
                return PolicyDecision.RETRY
            logger.debug(f"Step {step.id} used all {self.max_retries} retries; last error: {error}")
            return PolicyDecision.STOP
        if policy == ErrorPolicy.CONTINUE and not fail_fast:
            return PolicyDecision.CONTINUE
        return PolicyDecision.STOP

    def backoff(self, retry_number: int) -> float:
        """Delay before the ``retry_number``-th shallow retry (1-based)."""
        if retry_number < 1:
            return 0.0
        return self.backoff_base * (self.backoff_multiplier ** (retry_number - 1))
