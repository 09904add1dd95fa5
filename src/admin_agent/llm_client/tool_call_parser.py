"""Parse tool calls out of raw model completion text.

Models without native function calling answer with JSON in several shapes, or
with a tag-pair syntax:

    <function=admin_api_request>
    <parameter=method>GET</parameter>
    <parameter=query>{"limit": 5}</parameter>
    </function>

Strategies are tried in order and the first one that yields a structured
answer wins. Nothing here raises; text that matches no strategy parses to an
empty list and the caller treats it as a conversational reply.
"""

import re
from typing import Any
from urllib.parse import parse_qsl

import orjson

from admin_agent.llm_client.types import ToolCall
from admin_agent.telemetry import get_logger

log = get_logger(__name__)

ADMIN_API_TOOL = "admin_api_request"

_FENCE_RE = re.compile(r"```[ \t]*(?:json|JSON|tool_calls?)?[ \t]*\n?([\s\S]*?)```")
_FUNCTION_RE = re.compile(
    r"<function(?:=|\s+name=)[\"']?([\w.\-]+)[\"']?\s*>([\s\S]*?)</function>",
    re.IGNORECASE,
)
_PARAMETER_RE = re.compile(
    r"<parameter(?:=|\s+name=)[\"']?([\w.\-]+)[\"']?\s*>([\s\S]*?)</parameter>",
    re.IGNORECASE,
)
_EXPLICIT_REQUEST_RE = re.compile(
    r"\b(get|post|put|patch|delete)\s+(/(?:admin|store)/[^\s?#]*)(?:\?(\S+))?",
    re.IGNORECASE,
)


def _loads(text: str) -> Any:
    try:
        return orjson.loads(text)
    except orjson.JSONDecodeError:
        return None


def _decode_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        decoded = _loads(raw.strip()) if raw.strip() else {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def _normalize_call(item: Any) -> ToolCall | None:
    if not isinstance(item, dict):
        return None

    function = item.get("function")
    if isinstance(function, dict):
        # OpenAI-style {"function": {"name": ..., "arguments": "..."}}
        item = {**function, **{k: v for k, v in item.items() if k != "function"}}

    name = item.get("name") or item.get("tool") or item.get("function")
    if not isinstance(name, str) or not name.strip():
        if isinstance(item.get("method"), str) and isinstance(item.get("path"), str):
            # Bare {"method": ..., "path": ...} shorthand
            return ToolCall(name=ADMIN_API_TOOL, arguments=dict(item))
        return None

    raw_args = item.get("arguments", item.get("args", item.get("parameters", {})))
    return ToolCall(name=name.strip(), arguments=_decode_arguments(raw_args))


def _calls_from_payload(payload: Any) -> list[ToolCall] | None:
    """Return calls if payload has the `toolCalls` shape, else None."""
    if not isinstance(payload, dict):
        return None
    raw_calls = payload.get("toolCalls", payload.get("tool_calls"))
    if not isinstance(raw_calls, list):
        return None
    calls = [call for call in (_normalize_call(item) for item in raw_calls) if call]
    return calls


def _parse_fenced(text: str) -> list[ToolCall] | None:
    for match in _FENCE_RE.finditer(text):
        calls = _calls_from_payload(_loads(match.group(1).strip()))
        if calls is not None:
            return calls
    return None


def _parse_whole(text: str) -> list[ToolCall] | None:
    return _calls_from_payload(_loads(text.strip()))


def _parse_outer_braces(text: str) -> list[ToolCall] | None:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return _calls_from_payload(_loads(text[start : end + 1]))


def _decode_parameter(value: str) -> Any:
    stripped = value.strip()
    if (stripped.startswith("{") and stripped.endswith("}")) or (
        stripped.startswith("[") and stripped.endswith("]")
    ):
        decoded = _loads(stripped)
        if decoded is not None:
            return decoded
    return stripped


def _parse_tag_pairs(text: str) -> list[ToolCall] | None:
    calls: list[ToolCall] = []
    for match in _FUNCTION_RE.finditer(text):
        name, body = match.group(1), match.group(2)
        arguments = {key: _decode_parameter(value) for key, value in _PARAMETER_RE.findall(body)}
        calls.append(ToolCall(name=name, arguments=arguments))
    return calls or None


_STRATEGIES = (
    ("fenced_block", _parse_fenced),
    ("whole_text", _parse_whole),
    ("outer_braces", _parse_outer_braces),
    ("tag_pairs", _parse_tag_pairs),
)


def parse_tool_calls(text: str | None, trace_id: str | None = None) -> list[ToolCall]:
    """Extract tool calls from a model completion.

    Args:
        text: Raw completion text.
        trace_id: Optional trace id for log correlation.

    Returns:
        Tool calls in the order they appear. Empty if the text is conversational.
    """
    if not text or not text.strip():
        return []

    for strategy_name, strategy in _STRATEGIES:
        try:
            calls = strategy(text)
        except (RecursionError, ValueError, TypeError):
            calls = None
        if calls is not None:
            log.debug(
                "tool_calls_parsed",
                strategy=strategy_name,
                count=len(calls),
                names=[call["name"] for call in calls],
                trace_id=trace_id,
            )
            return calls
    return []


def infer_tool_calls_from_message(message: str) -> list[ToolCall]:
    """Build admin API calls from explicit "GET /admin/..." text in a user message."""
    calls: list[ToolCall] = []
    for method, path, query_string in _EXPLICIT_REQUEST_RE.findall(message or ""):
        arguments: dict[str, Any] = {"method": method.upper(), "path": path.rstrip(".,;")}
        if query_string:
            arguments["query"] = dict(parse_qsl(query_string, keep_blank_values=True))
        calls.append(ToolCall(name=ADMIN_API_TOOL, arguments=arguments))
    return calls
