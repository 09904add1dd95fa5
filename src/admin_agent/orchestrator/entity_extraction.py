"""Entity extraction: structured lookup parameters from one model call.

The model is asked for {intent, resource, identifier, filters, limit}. When no
model answers, or the answer is not usable JSON, the regex heuristics of the
lookup module fill in what they can.
"""

from typing import Any

import orjson
from typing_extensions import TypedDict

from admin_agent.errors import ProvidersExhausted
from admin_agent.llm_client.types import PipelineStage
from admin_agent.orchestrator.lookup import RESOURCE_MAP, normalize_identifier, parse_lookup_intent
from admin_agent.orchestrator.prompts import (
    ENTITY_EXTRACTION_PROMPT,
    ENTITY_EXTRACTION_SYSTEM_PROMPT,
)
from admin_agent.telemetry import get_logger
from admin_agent.telemetry.events import ENTITIES_EXTRACTED
from admin_agent.telemetry.trace import TraceContext

log = get_logger(__name__)

INTENTS = frozenset({"list", "search", "detail", "orders", "create", "update", "delete", "other"})


class ExtractedEntities(TypedDict):
    """Structured view of a lookup request.

    Fields:
        intent: list, search, detail, orders, create, update, delete or other.
        resource: Admin collection (e.g. "customers"), or None.
        identifier: Name, email, handle or id referred to, or None.
        filters: Extra filters (e.g. {"status": "approved"}).
        limit: Requested item count, or None.
        source: "model" or "heuristic".
    """

    intent: str
    resource: str | None
    identifier: str | None
    filters: dict[str, Any]
    limit: int | None
    source: str


def heuristic_entities(message: str) -> ExtractedEntities:
    """Entities from the regex lookup parser alone."""
    intent = parse_lookup_intent(message)
    if intent is None:
        return ExtractedEntities(
            intent="other", resource=None, identifier=None, filters={}, limit=None, source="heuristic"
        )
    return ExtractedEntities(
        intent=intent.kind,
        resource=intent.resource,
        identifier=intent.identifier,
        filters=dict(intent.filters),
        limit=None,
        source="heuristic",
    )


def _strip_fences(content: str) -> str:
    if "```json" in content:
        start = content.find("```json") + 7
        end = content.find("```", start)
        return content[start : end if end != -1 else None].strip()
    if "```" in content:
        start = content.find("```") + 3
        end = content.find("```", start)
        return content[start : end if end != -1 else None].strip()
    return content.strip()


def _coerce(result: dict[str, Any], fallback: ExtractedEntities) -> ExtractedEntities:
    intent = str(result.get("intent") or "").strip().lower()
    if intent not in INTENTS:
        intent = fallback["intent"]

    resource = result.get("resource")
    if isinstance(resource, str):
        resource = resource.strip().lower()
        resource = RESOURCE_MAP.get(resource, resource)
        if resource in ("", "other", "null", "none"):
            resource = None
    else:
        resource = None

    identifier = result.get("identifier")
    identifier = normalize_identifier(identifier) if isinstance(identifier, str) else None
    if identifier and identifier.lower() in ("null", "none"):
        identifier = None

    filters = result.get("filters")
    limit = result.get("limit")
    return ExtractedEntities(
        intent=intent,
        resource=resource or fallback["resource"],
        identifier=identifier or fallback["identifier"],
        filters=filters if isinstance(filters, dict) else {},
        limit=limit if isinstance(limit, int) and not isinstance(limit, bool) and limit > 0 else None,
        source="model",
    )


async def extract_entities(
    message: str,
    guard: Any,
    client: Any,
    trace_ctx: TraceContext | None = None,
) -> ExtractedEntities:
    """Extract lookup entities with one model call on the entity_extraction stage.

    Args:
        message: Operator message.
        guard: ModelRotationGuard choosing the model.
        client: InferenceClient used by the guard.
        trace_ctx: Trace context for log correlation.

    Returns:
        ExtractedEntities; heuristic values when the model fails or answers badly.
    """
    trace_ctx = trace_ctx or TraceContext.new_trace()
    fallback = heuristic_entities(message)

    try:
        response = await guard.complete(
            PipelineStage.ENTITY_EXTRACTION,
            client,
            [{"role": "user", "content": ENTITY_EXTRACTION_PROMPT.format(message=message)}],
            system_prompt=ENTITY_EXTRACTION_SYSTEM_PROMPT,
            trace_ctx=trace_ctx,
        )
    except ProvidersExhausted as e:
        log.warning("entity_extraction_models_exhausted", error=str(e), **trace_ctx.log_fields())
        return fallback

    content = _strip_fences(response["content"] or "")
    if not content:
        log.warning("entity_extraction_empty_response", **trace_ctx.log_fields())
        return fallback

    try:
        result = orjson.loads(content)
    except orjson.JSONDecodeError as e:
        log.warning(
            "entity_extraction_json_parse_failed",
            error=str(e),
            content_preview=content[:200],
            **trace_ctx.log_fields(),
        )
        return fallback
    if not isinstance(result, dict):
        return fallback

    entities = _coerce(result, fallback)
    log.info(
        ENTITIES_EXTRACTED,
        intent=entities["intent"],
        resource=entities["resource"],
        has_identifier=entities["identifier"] is not None,
        **trace_ctx.log_fields(),
    )
    return entities
