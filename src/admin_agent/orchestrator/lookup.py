"""Heuristic parsing of lookup requests ("orders for Sarah", "find customer bob@x.com").

Used by the disambiguation controller to decide what to search for, and by the
entity extractor as its fallback when no model answers.
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Any

from admin_agent.orchestrator.routing import HITL_RE

# Words an operator uses -> admin collection
RESOURCE_MAP: dict[str, str] = {
    "website": "websites",
    "websites": "websites",
    "site": "websites",
    "sites": "websites",
    "domain": "websites",
    "domains": "websites",
    "customer": "customers",
    "customers": "customers",
    "client": "customers",
    "clients": "customers",
    "person": "persons",
    "persons": "persons",
    "people": "persons",
    "contact": "persons",
    "contacts": "persons",
    "product": "products",
    "products": "products",
    "item": "products",
    "items": "products",
    "design": "designs",
    "designs": "designs",
    "pattern": "designs",
    "patterns": "designs",
    "template": "designs",
    "templates": "designs",
    "order": "orders",
    "orders": "orders",
    "inventory": "inventory-items",
    "stock": "inventory-items",
}

# Field shown as the secondary label when searching a collection
SEARCH_FIELDS: dict[str, str] = {
    "websites": "domain",
    "customers": "email",
    "persons": "name",
    "products": "title",
    "designs": "name",
    "orders": "display_id",
    "inventory-items": "sku",
}

WRITE_WORDS_RE = re.compile(
    r"\b(?:update|change|rename|edit|modify|set|create|add|delete|remove|archive|cancel)\b",
    re.IGNORECASE,
)
_LIST_RE = re.compile(r"\b(?:list|all|every|show all)\b", re.IGNORECASE)
_NAMED_RE = re.compile(
    r"\b(?:named|called|for|with|matching|email|domain|sku)\s+[\"']?([^\"'?!]+?)[\"']?\s*[?.!]?\s*$",
    re.IGNORECASE,
)
_ID_TOKEN_RE = re.compile(r"\b([a-z]{2,8}_(?=[A-Za-z]*\d)[A-Za-z0-9]{4,})\b")
_LEADING_NOISE_RE = re.compile(r"^(?:the\s+)?(?:customer|client|user|person|contact)\s+", re.IGNORECASE)
_WORD_RE = re.compile(r"[a-z]+")


@dataclass(frozen=True)
class LookupIntent:
    """What to search for and where to go once a record is chosen.

    Attributes:
        kind: "orders" (orders of a customer), "list", "search" or "detail".
        resource: Collection searched for candidates (e.g. "customers").
        identifier: Free-text name, email or id to search by.
        endpoint: Collection path searched for candidates.
        target_endpoint: Path fetched after selection (orders flow only).
        link_key: Query key linking target records to the selection.
        write_requested: The message asks for a change, not just a read.
    """

    kind: str
    resource: str
    identifier: str | None = None
    endpoint: str = ""
    target_endpoint: str | None = None
    link_key: str | None = None
    write_requested: bool = False
    filters: dict[str, Any] = field(default_factory=dict)

    @property
    def search_field(self) -> str:
        """Secondary label field for options of this resource."""
        return SEARCH_FIELDS.get(self.resource, "name")

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation stored with a suspended run."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LookupIntent":
        """Rebuild from to_dict() output."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def normalize_identifier(raw: str | None) -> str | None:
    """Strip quotes, trailing punctuation and leading role words ("customer Sarah")."""
    if not raw:
        return None
    text = raw.strip().strip("\"'`").rstrip("?.!,;:").strip()
    text = _LEADING_NOISE_RE.sub("", text).strip()
    return text or None


def find_resource(message: str) -> str | None:
    """First word of the message that names a known collection."""
    for word in _WORD_RE.findall((message or "").lower()):
        if word in RESOURCE_MAP:
            return RESOURCE_MAP[word]
    return None


def parse_lookup_intent(message: str) -> LookupIntent | None:
    """Parse a lookup request.

    Returns:
        LookupIntent, or None when the message names no known collection.
    """
    text = (message or "").strip()
    write_requested = bool(WRITE_WORDS_RE.search(text))

    match = HITL_RE.search(text)
    if match:
        return LookupIntent(
            kind="orders",
            resource="customers",
            identifier=normalize_identifier(match.group(1)),
            endpoint="/admin/customers",
            target_endpoint="/admin/orders",
            link_key="customer_id",
            write_requested=write_requested,
        )

    resource = find_resource(text)
    if resource is None:
        return None
    endpoint = f"/admin/{resource}"

    id_match = _ID_TOKEN_RE.search(text)
    if id_match:
        return LookupIntent(
            kind="detail",
            resource=resource,
            identifier=id_match.group(1),
            endpoint=endpoint,
            write_requested=write_requested,
        )

    named = _NAMED_RE.search(text)
    if named:
        return LookupIntent(
            kind="search",
            resource=resource,
            identifier=normalize_identifier(named.group(1)),
            endpoint=endpoint,
            write_requested=write_requested,
        )

    if _LIST_RE.search(text):
        return LookupIntent(
            kind="list", resource=resource, endpoint=endpoint, write_requested=write_requested
        )
    return None
