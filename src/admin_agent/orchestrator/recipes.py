"""Deterministic recipes: fixed plans for common list queries.

A recipe bypasses model-based planning entirely. "approved designs" becomes a
single GET on /admin/designs filtered by status; "recent orders" becomes a
GET sorted by creation date.
"""

import re
from dataclasses import dataclass

from admin_agent.orchestrator.types import ExecutionStep, StepMethod

RECIPE_LIMIT = 20

STATUS_WORDS = ("approved", "pending", "rejected", "active", "draft", "archived", "published")
RECENCY_WORDS = ("recent", "latest", "newest")

_NOUN = r"([a-z][a-z_\-]{2,}(?:\s+[a-z][a-z_\-]{2,})?)"
_STATUS_RE = re.compile(rf"\b({'|'.join(STATUS_WORDS)})\s+{_NOUN}\s*[.?!]?\s*$", re.IGNORECASE)
_RECENCY_RE = re.compile(
    rf"\b({'|'.join(RECENCY_WORDS)})\s+(?:\d+\s+)?{_NOUN}\s*[.?!]?\s*$", re.IGNORECASE
)
_NOT_RESOURCES = frozenset({"the", "and", "for", "with", "ones", "items", "things", "stuff"})


@dataclass(frozen=True)
class Recipe:
    """A named, fully determined plan."""

    name: str
    resource: str
    steps: tuple[ExecutionStep, ...]
    description: str = ""


def collection_name(noun: str) -> str:
    """Turn "design" / "Customer Groups" into an admin collection segment."""
    words = noun.strip().lower().replace("_", "-").split()
    slug = "-".join(words)
    if slug.endswith("y") and not slug.endswith(("ay", "ey", "oy", "uy")):
        return slug[:-1] + "ies"
    if not slug.endswith("s"):
        return slug + "s"
    return slug


def _status_recipe(status: str, noun: str) -> Recipe:
    resource = collection_name(noun)
    step = ExecutionStep(
        step=1,
        action=f"Fetch {status} {resource}",
        method=StepMethod.API.value,
        code=f"GET /admin/{resource}?status={status}&limit={RECIPE_LIMIT}",
    )
    return Recipe(
        name=f"{status}_{resource}".replace("-", "_"),
        resource=resource,
        steps=(step,),
        description=f"List {status} {resource}",
    )


def _recent_recipe(noun: str) -> Recipe:
    resource = collection_name(noun)
    step = ExecutionStep(
        step=1,
        action=f"Fetch recent {resource}",
        method=StepMethod.API.value,
        code=f"GET /admin/{resource}?order=-created_at&limit={RECIPE_LIMIT}",
    )
    return Recipe(
        name=f"recent_{resource}".replace("-", "_"),
        resource=resource,
        steps=(step,),
        description=f"List the most recent {resource}",
    )


def match_recipe(message: str) -> Recipe | None:
    """Return the recipe a message asks for, or None."""
    text = (message or "").strip()
    if not text:
        return None

    match = _STATUS_RE.search(text)
    if match and match.group(2).split()[0].lower() not in _NOT_RESOURCES:
        return _status_recipe(match.group(1).lower(), match.group(2))

    match = _RECENCY_RE.search(text)
    if match and match.group(2).split()[0].lower() not in _NOT_RESOURCES:
        return _recent_recipe(match.group(2))
    return None
