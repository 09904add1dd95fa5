"""Error taxonomy for the action resolver and execution engine.

Parser and alias-correction problems never surface as exceptions; these types
cover the conditions callers must see or record.
"""

from typing import Any


class AgentError(Exception):
    """Base exception for all admin agent errors."""

    pass


class ValidationError(AgentError):
    """Raised when arguments or a resume payload are malformed."""

    pass


class NotFoundError(AgentError):
    """Raised for an unknown run, endpoint, or service."""

    pass


class UnsupportedOperation(AgentError):
    """Raised for a write verb in the auto-execute path or an unknown step method."""

    pass


class ProvidersExhausted(AgentError):
    """Raised when every model candidate for a pipeline stage failed.

    Attributes:
        stage: Pipeline stage whose candidates were exhausted.
        attempts: (model_id, error) pairs in the order they were tried.
    """

    def __init__(self, stage: str, attempts: list[tuple[str, str]] | None = None) -> None:
        self.stage = stage
        self.attempts = attempts or []
        tried = ", ".join(model for model, _ in self.attempts) or "none"
        super().__init__(f"All models failed for {stage} (tried: {tried})")


class ExecutionError(AgentError):
    """One execution step failed. Recorded in the trace, never fatal to the plan.

    Attributes:
        step: Step number that failed.
        status_code: HTTP status for API steps, if any.
        detail: Response body or extra context.
    """

    def __init__(
        self,
        message: str,
        step: int | None = None,
        status_code: int | None = None,
        detail: Any = None,
    ) -> None:
        super().__init__(message)
        self.step = step
        self.status_code = status_code
        self.detail = detail


class ExpiredRun(AgentError):
    """Raised when resuming a suspended run past its retention window."""

    pass
