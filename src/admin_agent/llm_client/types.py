"""Type definitions for the LLM client module.

This module defines the core types used by the inference client:
- PipelineStage: Enum of pipeline stages that get their own model candidates
- ToolCall: One parsed action request
- LLMResponse: Normalized completion
- Error classes: Hierarchy of LLM transport errors
"""

from enum import Enum
from typing import Any

from typing_extensions import TypedDict


class PipelineStage(str, Enum):
    """Pipeline stages, each with its own ordered model candidates.

    These map to the `stages` section of config/models.yaml.
    """

    INTENT_CLASSIFICATION = "intent_classification"
    ENTITY_EXTRACTION = "entity_extraction"
    TOOL_PLANNING = "tool_planning"
    STEP_EVALUATION = "step_evaluation"
    RESPONSE_GENERATION = "response_generation"

    @classmethod
    def from_str(cls, value: str) -> "PipelineStage | None":
        """Convert string to PipelineStage (case-insensitive), or None if unknown."""
        value_lower = value.strip().lower()
        for stage in cls:
            if stage.value == value_lower:
                return stage
        return None


class ToolCall(TypedDict):
    """One requested action.

    Attributes:
        name: Name of the tool to call (e.g., "admin_api_request").
        arguments: Decoded arguments.
    """

    name: str
    arguments: dict[str, Any]


class LLMResponse(TypedDict):
    """Normalized chat completion.

    Attributes:
        role: Response role (typically "assistant").
        content: Text content from the model.
        model: Model id that produced the completion.
        usage: Token usage information (prompt_tokens, completion_tokens, etc.).
        finish_reason: Provider finish reason, if reported.
        raw: Raw response from the backend for debugging.
    """

    role: str
    content: str
    model: str
    usage: dict[str, Any]
    finish_reason: str | None
    raw: dict[str, Any]


# Error hierarchy


class LLMClientError(Exception):
    """Base exception for all LLM client errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LLMTimeout(LLMClientError):
    """Raised when an LLM request times out."""

    pass


class LLMConnectionError(LLMClientError):
    """Raised when connection to the inference provider fails."""

    pass


class LLMRateLimit(LLMClientError):
    """Raised when the provider signals a rate limit or exhausted quota."""

    pass


class LLMServerError(LLMClientError):
    """Raised when the provider returns an error (5xx)."""

    pass


class LLMInvalidResponse(LLMClientError):
    """Raised when the provider returns an invalid or unexpected response format."""

    pass
