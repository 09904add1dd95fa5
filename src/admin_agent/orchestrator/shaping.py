"""Helpers for reading admin API payloads of unknown shape.

List endpoints answer `{"orders": [...], "count": 12, "offset": 0, "limit": 50}`;
detail endpoints answer `{"order": {...}}`; service calls may return bare lists.
"""

from typing import Any

KNOWN_ENTITY_KEYS = (
    "products",
    "orders",
    "customers",
    "designs",
    "partners",
    "persons",
    "websites",
    "inventory_items",
    "tasks",
    "media",
    "items",
    "results",
    "data",
)
METADATA_KEYS = frozenset({"count", "offset", "limit", "total", "page", "pages"})
LABEL_FIELDS = ("display_id", "title", "name", "handle", "sku", "email", "domain")


def extract_items(data: Any) -> tuple[str | None, list[Any]]:
    """Find the record list in a payload.

    Returns:
        (key, items): the key the list was found under (None for a bare list),
        and the list itself (empty if there is none).
    """
    if isinstance(data, list):
        return None, data
    if not isinstance(data, dict):
        return None, []
    for key in KNOWN_ENTITY_KEYS:
        value = data.get(key)
        if isinstance(value, list):
            return key, value
    for key, value in data.items():
        if key not in METADATA_KEYS and isinstance(value, list):
            return key, value
    return None, []


def total_count(data: Any, items: list[Any]) -> int:
    """Total reported by the payload ("count"/"total"), else len(items)."""
    if isinstance(data, dict):
        for key in ("count", "total"):
            value = data.get(key)
            if isinstance(value, int) and value >= len(items):
                return value
    return len(items)


def person_name(record: dict[str, Any]) -> str:
    """"First Last" from first_name/last_name, or ""."""
    parts = [str(record.get(k) or "").strip() for k in ("first_name", "last_name")]
    return " ".join(p for p in parts if p)


def record_label(record: Any) -> str:
    """Human label for a record: full name, title, name, handle, ... or its id."""
    if not isinstance(record, dict):
        return str(record)
    name = person_name(record)
    if name:
        return name
    for key in LABEL_FIELDS:
        value = record.get(key)
        if value not in (None, ""):
            return f"#{value}" if key == "display_id" else str(value)
    return str(record.get("id", "?"))
