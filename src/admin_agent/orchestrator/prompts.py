"""Prompts for tool planning, entity extraction and response synthesis.

Prompt text lives here so the executor, extractor and synthesizer only fill in
the dynamic parts (allowed operations, data context, error lines).
"""

from collections.abc import Sequence

from admin_agent.catalog.index import Endpoint

# ============================================================================
# Tool planning (reasoning/acting loop)
# ============================================================================

TOOL_PLANNING_SYSTEM_PROMPT = """You are the operations assistant for an e-commerce admin platform.
You answer the operator by calling the admin REST API.

**Tool:**
{tool_block}

**Allowed operations** (use ONLY these paths; replace {{param}} placeholders with real ids):
{endpoint_block}

**How to call the tool:**
Reply with ONLY a JSON object, optionally inside a ```json fence:
{{"toolCalls": [{{"name": "admin_api_request", "arguments": {{"method": "GET", "path": "/admin/orders", "query": {{"limit": 20}}}}}}]}}

**Rules:**
- GET requests run immediately. POST/PUT/PATCH/DELETE are NOT executed; they are shown
  to the operator for confirmation, so propose them only when the operator asked for a change.
- Put list filters in "query", never in "body", for GET requests.
- After each call you receive "Tool result: ..." with the status and JSON. Use it.
- When you have what you need, reply in plain text without any JSON. Do not invent data.
"""

DEGRADED_ENDPOINT_NOTE = (
    "(The endpoint catalog is currently unavailable. Use conventional paths such as "
    "/admin/products, /admin/orders, /admin/customers; unknown paths may fail.)"
)


def render_endpoint_block(endpoints: Sequence[Endpoint]) -> str:
    """Numbered list of allowed operations for the planning prompt."""
    if not endpoints:
        return DEGRADED_ENDPOINT_NOTE
    return "\n".join(endpoint.render(i) for i, endpoint in enumerate(endpoints, start=1))


def build_tool_planning_prompt(
    tool_block: str, endpoints: Sequence[Endpoint], services_block: str = ""
) -> str:
    """Fill the planning prompt."""
    prompt = TOOL_PLANNING_SYSTEM_PROMPT.format(
        tool_block=tool_block, endpoint_block=render_endpoint_block(endpoints)
    )
    if services_block:
        prompt += f"\n**Backend services** (informational):\n{services_block}\n"
    return prompt


# ============================================================================
# Entity extraction
# ============================================================================

ENTITY_EXTRACTION_SYSTEM_PROMPT = """You extract structured lookup parameters from an operator's request
to an e-commerce admin platform. Always return valid JSON and nothing else."""

ENTITY_EXTRACTION_PROMPT = """Request: {message}

Return ONLY valid JSON in this exact format (no explanation, just JSON):
{{
  "intent": "list|search|detail|orders|create|update|delete|other",
  "resource": "customers|orders|products|designs|persons|websites|inventory-items|other",
  "identifier": "name, email, handle or id the operator refers to, or null",
  "filters": {{}},
  "limit": null
}}"""


# ============================================================================
# Response synthesis
# ============================================================================

SYNTHESIS_BASE_PROMPT = """You are the operations assistant for an e-commerce admin platform.
Write the final reply to the operator in concise Markdown. Use only the data provided;
never invent records, ids or numbers."""

SYNTHESIS_MODE_PROMPTS: dict[str, str] = {
    "data": (
        "The operator asked to see records. Enumerate ALL items in the data context, one per "
        "line, with their id and most useful fields (name/title, status, dates, amounts). "
        "Do not skip items and do not summarize them away."
    ),
    "analysis": (
        "The operator asked an analytical question. Lead with the TOTAL COUNT and the key "
        "numbers, then a short breakdown. Use the count fields in the data when present."
    ),
    "error": (
        "Some or all steps FAILED. Say explicitly which steps failed and why, in plain words, "
        "then report whatever data was still retrieved. Never pretend the request succeeded."
    ),
    "create": (
        "A record was created. Confirm what was created, with its id and key fields."
    ),
    "update": (
        "A record was updated. Confirm which record changed and the new values."
    ),
    "delete": (
        "A record was deleted or archived. Confirm exactly which record was affected."
    ),
    "docs": (
        "The operator asked how to do something with the API. Answer using ONLY the "
        "endpoints listed in the data context, naming method and path for each step."
    ),
    "chat": (
        "This is a conversational message. Reply briefly and helpfully. If the operator seems "
        "to want data, suggest a concrete request such as 'list recent orders'."
    ),
}


def build_synthesis_prompt(mode: str) -> str:
    """System prompt for a synthesis mode (falls back to chat)."""
    instructions = SYNTHESIS_MODE_PROMPTS.get(mode, SYNTHESIS_MODE_PROMPTS["chat"])
    return f"{SYNTHESIS_BASE_PROMPT}\n\n**Mode: {mode}**\n{instructions}"


def build_synthesis_user_message(message: str, data_block: str, error_lines: Sequence[str]) -> str:
    """User turn carrying the request, the data context and any failures."""
    parts = [f"Operator request: {message}"]
    if data_block:
        parts.append(f"Data context:\n{data_block}")
    if error_lines:
        parts.append("Failures:\n" + "\n".join(f"- {line}" for line in error_lines))
    return "\n\n".join(parts)
