"""Response synthesis: turn execution output into the final reply.

One model call on the response_generation stage with a mode-specific prompt.
If every candidate model fails, or the model answers with nothing, a
deterministic summary is returned instead, so the reply is never empty.
Failed steps are always named in the reply.
"""

import re
from collections.abc import Sequence
from typing import Any

import orjson

from admin_agent.errors import ProvidersExhausted
from admin_agent.llm_client.types import PipelineStage
from admin_agent.orchestrator.prompts import build_synthesis_prompt, build_synthesis_user_message
from admin_agent.orchestrator.shaping import METADATA_KEYS, extract_items, record_label, total_count
from admin_agent.telemetry import get_logger
from admin_agent.telemetry.events import SYNTHESIS_FALLBACK
from admin_agent.telemetry.trace import TraceContext

log = get_logger(__name__)

MAX_CONTEXT_ITEMS = 50
MAX_CONTEXT_CHARS = 12000
HEURISTIC_TOP_N = 10

_ANALYSIS_RE = re.compile(
    r"\b(?:how many|count|total|average|avg|sum|compare|trend|breakdown|statistics|stats)\b",
    re.IGNORECASE,
)
_MUTATION_RES = (
    ("create", re.compile(r"\b(?:create|add|new)\b", re.IGNORECASE)),
    ("delete", re.compile(r"\b(?:delete|remove|archive)\b", re.IGNORECASE)),
    ("update", re.compile(r"\b(?:update|change|rename|edit|modify|set)\b", re.IGNORECASE)),
)
_THINK_RE = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)


def determine_mode(
    message: str, data: Any = None, errors: Sequence[str] = (), mutated: bool = False
) -> str:
    """Pick the synthesis mode.

    Args:
        message: Operator message.
        data: Execution output, if any.
        errors: Failure lines.
        mutated: A write was executed for this request.
    """
    if errors:
        return "error"
    if mutated:
        for mode, pattern in _MUTATION_RES:
            if pattern.search(message or ""):
                return mode
        return "update"
    if data is None:
        return "chat"
    if _ANALYSIS_RE.search(message or ""):
        return "analysis"
    return "data"


def _dumps(value: Any) -> str:
    return orjson.dumps(value, default=str, option=orjson.OPT_NON_STR_KEYS).decode()


def build_data_block(data: Any) -> str:
    """Data context for the prompt: the record list (at most 50 items) plus counts."""
    if data is None:
        return ""
    key, items = extract_items(data)
    if items:
        block: dict[str, Any] = {
            "total_count": total_count(data, items),
            "shown": min(len(items), MAX_CONTEXT_ITEMS),
            key or "items": items[:MAX_CONTEXT_ITEMS],
        }
        if isinstance(data, dict):
            block.update({k: v for k, v in data.items() if k in METADATA_KEYS and k not in block})
        text = _dumps(block)
    else:
        text = _dumps(data)
    if len(text) > MAX_CONTEXT_CHARS:
        text = text[:MAX_CONTEXT_CHARS] + "...(truncated)"
    return text


def heuristic_summary(message: str, data: Any = None, errors: Sequence[str] = ()) -> str:
    """Deterministic reply: failures, item counts and the top identifiers."""
    lines: list[str] = []
    if errors:
        lines.append("Some steps failed:")
        lines.extend(f"- {error}" for error in errors)

    key, items = extract_items(data)
    if items:
        total = total_count(data, items)
        if lines:
            lines.append("")
        lines.append(f"Found {total} {key or 'items'}.")
        for item in items[:HEURISTIC_TOP_N]:
            if isinstance(item, dict) and "id" in item:
                lines.append(f"- {record_label(item)} ({item['id']})")
            else:
                lines.append(f"- {record_label(item)}")
        if len(items) > HEURISTIC_TOP_N:
            lines.append(f"...and {len(items) - HEURISTIC_TOP_N} more.")
    elif isinstance(data, dict) and data:
        if lines:
            lines.append("")
        lines.append("Result fields: " + ", ".join(list(data)[:HEURISTIC_TOP_N]))
    elif isinstance(data, (list, tuple)) and not data:
        lines.append("No results found.")
    elif data not in (None, "", [], {}):
        lines.append(f"Result: {str(data)[:500]}")

    if not lines:
        lines.append(
            "The language model is unavailable right now, so I can only confirm your "
            f"request was received: {message.strip()[:200] or '(empty)'}"
        )
    return "\n".join(lines)


class ResponseSynthesizer:
    """Writes the final reply with the response_generation stage models."""

    def __init__(self, guard: Any = None, client: Any = None) -> None:
        """Initialize the synthesizer.

        Args:
            guard: ModelRotationGuard (the process-wide guard if None).
            client: InferenceClient (a new client if None).
        """
        self._guard = guard
        self._client = client

    @property
    def guard(self) -> Any:
        if self._guard is None:
            from admin_agent.llm_client.rotation import get_rotation_guard  # noqa: PLC0415

            self._guard = get_rotation_guard()
        return self._guard

    @property
    def client(self) -> Any:
        if self._client is None:
            from admin_agent.llm_client.client import InferenceClient  # noqa: PLC0415

            self._client = InferenceClient()
        return self._client

    async def synthesize(
        self,
        message: str,
        mode: str | None = None,
        data: Any = None,
        errors: Sequence[str] = (),
        history: list[dict[str, Any]] | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> str:
        """Produce the final reply.

        Args:
            message: Operator message.
            mode: Synthesis mode; derived from message, data and errors if None.
            data: Execution output used as the data context.
            errors: Failure lines ("Step 2: ..."), always surfaced.
            history: Prior conversation turns (chat mode).
            trace_ctx: Trace context for log correlation.

        Returns:
            Non-empty reply text.
        """
        trace_ctx = trace_ctx or TraceContext.new_trace()
        errors = list(errors)
        if errors:
            mode = "error"
        mode = mode or determine_mode(message, data, errors)

        user_message = build_synthesis_user_message(message, build_data_block(data), errors)
        messages = [*(history or []), {"role": "user", "content": user_message}]
        try:
            response = await self.guard.complete(
                PipelineStage.RESPONSE_GENERATION,
                self.client,
                messages,
                system_prompt=build_synthesis_prompt(mode),
                trace_ctx=trace_ctx,
            )
        except ProvidersExhausted as e:
            log.warning(
                SYNTHESIS_FALLBACK,
                reason="providers_exhausted",
                error=str(e),
                mode=mode,
                **trace_ctx.log_fields(),
            )
            return heuristic_summary(message, data, errors)

        text = _THINK_RE.sub("", response["content"] or "").strip()
        if not text:
            log.warning(SYNTHESIS_FALLBACK, reason="empty_reply", mode=mode, **trace_ctx.log_fields())
            return heuristic_summary(message, data, errors)

        missing = [error for error in errors if error not in text]
        if missing:
            text += "\n\nFailed steps:\n" + "\n".join(f"- {error}" for error in missing)
        return text
