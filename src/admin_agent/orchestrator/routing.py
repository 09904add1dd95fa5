"""Deterministic intent router.

Maps a message to a processing mode with cheap heuristics and no model call.
Rules, first hit wins:
(a) explicit "<VERB> /admin/..." -> tool
(a2) short greetings/thanks ("good" only before a time of day) -> chat
(b) recipe pattern ("approved X", "recent X") -> recipe
(c) one-to-many lookup ("orders for <name>") -> hitl
(d) action verb and more than two tokens -> tool
(e) documentation question ("how do I ...") -> rag
(f) otherwise -> chat
"""

import re

from admin_agent.orchestrator.recipes import match_recipe
from admin_agent.orchestrator.types import RouteMode, RoutingPlan
from admin_agent.telemetry import get_logger
from admin_agent.telemetry.events import ROUTING_DECISION

log = get_logger(__name__)

_GREETING_WORDS = frozenset(
    {"hi", "hello", "hey", "yo", "thanks", "thank", "thx", "cheers", "morning"}
)
# "good" only greets as "good morning", "good night", ...
_TIMES_OF_DAY = frozenset({"morning", "afternoon", "evening", "night", "day"})
_GREETING_MAX_TOKENS = 5

_EXPLICIT_REQUEST_RE = re.compile(
    r"\b(?:get|post|put|patch|delete)\s+/(?:admin|store)/", re.IGNORECASE
)
HITL_RE = re.compile(r"\borders?\b[\s\S]*\b(?:for|of)\b\s+(.+?)\s*$", re.IGNORECASE)
ACTION_VERB_RE = re.compile(
    r"\b(?:list|show|get|fetch|find|search|create|add|make|new|update|edit|modify|change|set|"
    r"patch|delete|remove|archive|cancel|refund|fulfill|ship|mark)\b",
    re.IGNORECASE,
)
_RAG_RE = re.compile(
    r"^\s*(?:how\s+(?:do|can|should|would)\s+i\b|what\s+(?:is|are)\s+the\s+(?:endpoint|api|route)s?\b|"
    r"which\s+(?:endpoint|api|route)s?\b|where\s+(?:do|can)\s+i\s+find\b|is\s+there\s+an?\s+(?:endpoint|api)\b)",
    re.IGNORECASE,
)
_TOKEN_RE = re.compile(r"[\w/\-]+")


def _tokens(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def is_greeting(text: str) -> bool:
    """True for short greetings and thanks ("hi", "thanks, that's all")."""
    tokens = _tokens(text)
    if not 0 < len(tokens) <= _GREETING_MAX_TOKENS:
        return False
    if tokens[0] == "good":
        return len(tokens) > 1 and tokens[1] in _TIMES_OF_DAY
    return tokens[0] in _GREETING_WORDS


def _plan(mode: RouteMode, reason: str, confidence: float, recipe: str | None = None) -> RoutingPlan:
    return {"mode": mode, "reason": reason, "recipe": recipe, "confidence": confidence}


def classify_message(message: str) -> RoutingPlan:
    """Apply the routing rules without logging. Pure."""
    text = (message or "").strip()
    if not text:
        return _plan(RouteMode.CHAT, "empty_message", 1.0)

    if _EXPLICIT_REQUEST_RE.search(text):
        return _plan(RouteMode.TOOL, "explicit_request", 0.95)

    if is_greeting(text):
        return _plan(RouteMode.CHAT, "greeting", 0.95)

    recipe = match_recipe(text)
    if recipe is not None:
        return _plan(RouteMode.RECIPE, "recipe_pattern", 0.9, recipe=recipe.name)

    if HITL_RE.search(text):
        return _plan(RouteMode.HITL, "one_to_many_lookup", 0.85)

    if ACTION_VERB_RE.search(text) and len(_tokens(text)) > 2:
        return _plan(RouteMode.TOOL, "action_verb", 0.75)

    if _RAG_RE.search(text):
        return _plan(RouteMode.RAG, "documentation_question", 0.7)

    return _plan(RouteMode.CHAT, "default", 0.6)


def route_message(message: str, trace_id: str | None = None) -> RoutingPlan:
    """Classify a message into a processing mode.

    Args:
        message: Operator message.
        trace_id: Optional trace id for log correlation.

    Returns:
        RoutingPlan with mode, reason, recipe and confidence.
    """
    plan = classify_message(message)
    log.info(
        ROUTING_DECISION,
        mode=plan["mode"].value,
        reason=plan["reason"],
        recipe=plan["recipe"],
        trace_id=trace_id,
    )
    return plan
