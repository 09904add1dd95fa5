"""LLM client module.

This module provides the InferenceClient for chat completion providers, the
ModelRotationGuard that spreads calls over per-stage model candidates, and the
tool-call parser for models without native function calling.
"""

from typing import TYPE_CHECKING

from admin_agent.llm_client.models import ModelConfig, StageDefinition
from admin_agent.llm_client.tool_call_parser import (
    ADMIN_API_TOOL,
    infer_tool_calls_from_message,
    parse_tool_calls,
)
from admin_agent.llm_client.types import (
    LLMClientError,
    LLMConnectionError,
    LLMInvalidResponse,
    LLMRateLimit,
    LLMResponse,
    LLMServerError,
    LLMTimeout,
    PipelineStage,
    ToolCall,
)

if TYPE_CHECKING:
    from admin_agent.llm_client.client import InferenceClient
    from admin_agent.llm_client.rotation import ModelRotationGuard, get_rotation_guard
else:
    # client and rotation read settings; import them lazily so config can
    # import llm_client.models without a cycle
    def __getattr__(name: str):
        if name == "InferenceClient":
            from admin_agent.llm_client.client import InferenceClient

            return InferenceClient
        if name in ("ModelRotationGuard", "get_rotation_guard"):
            from admin_agent.llm_client import rotation

            return getattr(rotation, name)
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "ADMIN_API_TOOL",
    "InferenceClient",
    "ModelRotationGuard",
    "get_rotation_guard",
    "ModelConfig",
    "StageDefinition",
    "LLMClientError",
    "LLMConnectionError",
    "LLMInvalidResponse",
    "LLMResponse",
    "LLMRateLimit",
    "LLMServerError",
    "LLMTimeout",
    "PipelineStage",
    "ToolCall",
    "parse_tool_calls",
    "infer_tool_calls_from_message",
]
