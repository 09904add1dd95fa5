"""Endpoint catalog index.

A CatalogIndex is an immutable snapshot of the operations the agent may call.
It is built wholesale from a catalog document (flat list or OpenAPI-style path
map) and never mutated afterwards; refreshing means building a new index and
swapping the reference (see source.py).

Path identity goes through normalize_path():
- leading "/" forced, query string, fragment and trailing "/" dropped
- everything forced under "/admin" ("/admin/admin/..." collapsed)
- ":id" placeholders rewritten to "{id}"
- "_" canonicalized to "-" outside placeholders
"""

import re
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

ADMIN_ROOT = "/admin"
HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

_SLASHES_RE = re.compile(r"/{2,}")
_COLON_PARAM_RE = re.compile(r"^:([A-Za-z_][\w]*)$")
_TOKEN_RE = re.compile(r"[a-z0-9]+")
_SKIPPED_PREFIXES = ("/store", "/auth", "/hooks")
_METADATA_SCHEMA_PROPS = 8

STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "can", "do", "for", "from",
        "give", "have", "how", "i", "in", "is", "it", "me", "my", "of", "on", "or",
        "please", "the", "their", "them", "this", "to", "us", "we", "what", "which",
        "with", "you", "your",
    }
)
LIST_WORDS = frozenset({"list", "show", "all", "get", "find", "search", "fetch", "view"})


def is_placeholder(segment: str) -> bool:
    """Return True for "{id}"-style path parameters."""
    return len(segment) > 2 and segment.startswith("{") and segment.endswith("}")


def clean_path(path: str) -> str:
    """Normalize slashes, the /admin root and placeholders, keeping separators as written."""
    path = (path or "").strip().split("?", 1)[0].split("#", 1)[0]
    if not path.startswith("/"):
        path = "/" + path
    path = _SLASHES_RE.sub("/", path)
    while path.startswith(f"{ADMIN_ROOT}{ADMIN_ROOT}/") or path == f"{ADMIN_ROOT}{ADMIN_ROOT}":
        path = path[len(ADMIN_ROOT) :]
    if path != ADMIN_ROOT and not path.startswith(f"{ADMIN_ROOT}/"):
        path = ADMIN_ROOT + (path if path != "/" else "")
    segments = []
    for segment in path.split("/"):
        colon = _COLON_PARAM_RE.match(segment)
        segments.append(f"{{{colon.group(1)}}}" if colon else segment)
    path = "/".join(segments)
    if len(path) > 1:
        path = path.rstrip("/")
    return path


def normalize_path(path: str) -> str:
    """Return the canonical form of an admin API path. Idempotent."""
    light = clean_path(path)
    return "/".join(
        segment if is_placeholder(segment) else segment.replace("_", "-")
        for segment in light.split("/")
    )


def underscore_alias(path: str) -> str:
    """Return the "_"-separated variant of a canonical path."""
    return "/".join(
        segment if is_placeholder(segment) else segment.replace("-", "_")
        for segment in normalize_path(path).split("/")
    )


def path_segments(path: str) -> list[str]:
    """Split a path into its non-empty segments."""
    return [segment for segment in path.split("/") if segment]


def tokenize(text: str) -> list[str]:
    """Lowercase tokens with stopwords removed and light stemming applied."""
    tokens = []
    for token in _TOKEN_RE.findall((text or "").lower().replace("_", " ").replace("-", " ")):
        if token in STOPWORDS:
            continue
        tokens.append(stem(token))
    return tokens


def stem(token: str) -> str:
    """Strip common English suffixes ("orders" -> "order", "shipping" -> "shipp")."""
    for suffix in ("ies", "ing", "es", "ed", "s"):
        if len(token) > len(suffix) + 2 and token.endswith(suffix):
            return token[: -len(suffix)] + ("y" if suffix == "ies" else "")
    return token


def infer_method(query: str) -> str:
    """Guess the HTTP method a natural-language request implies."""
    words = set(_TOKEN_RE.findall((query or "").lower()))
    if words & {"create", "add", "new", "make"}:
        return "POST"
    if words & {"update", "edit", "modify", "change", "set", "rename"}:
        return "PATCH"
    if words & {"put", "replace"}:
        return "PUT"
    if words & {"delete", "remove", "archive", "cancel"}:
        return "DELETE"
    return "GET"


def summarize_schema(schema: Any, max_props: int = _METADATA_SCHEMA_PROPS) -> str:
    """Render a short one-line excerpt of a JSON schema for prompts."""
    if not isinstance(schema, Mapping):
        return ""
    parts: list[str] = []
    ref = schema.get("$ref")
    if isinstance(ref, str):
        parts.append(f"ref: {ref.rsplit('/', 1)[-1]}")
    if schema.get("type"):
        parts.append(f"type: {schema['type']}")
    properties = schema.get("properties")
    if isinstance(properties, Mapping) and properties:
        names = list(properties)[:max_props]
        more = "" if len(properties) <= max_props else ", ..."
        parts.append(f"props: {', '.join(names)}{more}")
    items = schema.get("items")
    if isinstance(items, Mapping):
        item_ref = items.get("$ref")
        item_type = item_ref.rsplit("/", 1)[-1] if isinstance(item_ref, str) else items.get("type")
        if item_type:
            parts.append(f"items: {item_type}")
    required = schema.get("required")
    if isinstance(required, list) and required:
        parts.append(f"required: {', '.join(str(r) for r in required[:max_props])}")
    return "; ".join(parts)


@dataclass(frozen=True)
class Endpoint:
    """One allowed operation.

    Attributes:
        method: Upper-case HTTP method.
        path: Canonical path (normalize_path).
        declared_path: Path as the catalog declared it (light normalization only).
        summary: Human description for prompts.
        path_params: Names of path placeholders.
        query_params: Documented query parameter names.
        schema_excerpt: summarize_schema() of the request or response body.
    """

    method: str
    path: str
    declared_path: str = ""
    summary: str = ""
    path_params: tuple[str, ...] = ()
    query_params: tuple[str, ...] = ()
    schema_excerpt: str = ""

    @classmethod
    def create(
        cls,
        method: str,
        path: str,
        summary: str = "",
        path_params: Iterable[str] = (),
        query_params: Iterable[str] = (),
        schema_excerpt: str = "",
    ) -> "Endpoint":
        """Build an endpoint, normalizing method and path."""
        declared = clean_path(path)
        canonical = normalize_path(path)
        params = tuple(path_params) or tuple(
            segment[1:-1] for segment in path_segments(canonical) if is_placeholder(segment)
        )
        return cls(
            method=method.strip().upper(),
            path=canonical,
            declared_path=declared,
            summary=(summary or "").strip(),
            path_params=params,
            query_params=tuple(query_params),
            schema_excerpt=schema_excerpt,
        )

    @property
    def key(self) -> tuple[str, str]:
        """Identity of the endpoint: (method, canonical path)."""
        return (self.method, self.path)

    @property
    def is_write(self) -> bool:
        """True for POST/PUT/PATCH/DELETE."""
        return self.method in WRITE_METHODS

    def render(self, index: int | None = None) -> str:
        """Prompt line: "N) METHOD path" plus summary and schema excerpt."""
        head = f"{index}) " if index is not None else ""
        lines = [f"{head}{self.method} {self.declared_path or self.path}"]
        if self.summary:
            lines.append(f"Summary: {self.summary}")
        if self.query_params:
            lines.append(f"Query: {', '.join(self.query_params[:10])}")
        if self.schema_excerpt:
            lines.append(f"Schema: {self.schema_excerpt}")
        return "\n".join(lines)


def _params_from_operation(operation: Mapping[str, Any]) -> tuple[list[str], list[str]]:
    path_params: list[str] = []
    query_params: list[str] = []
    for param in operation.get("parameters") or []:
        if not isinstance(param, Mapping) or not param.get("name"):
            continue
        if param.get("in") == "path":
            path_params.append(str(param["name"]))
        elif param.get("in") == "query":
            query_params.append(str(param["name"]))
    return path_params, query_params


def _schema_from_operation(operation: Mapping[str, Any]) -> Any:
    request_body = operation.get("requestBody")
    if isinstance(request_body, Mapping):
        content = request_body.get("content") or {}
        json_content = content.get("application/json") if isinstance(content, Mapping) else None
        if isinstance(json_content, Mapping) and json_content.get("schema"):
            return json_content["schema"]
    responses = operation.get("responses")
    if isinstance(responses, Mapping):
        ok = responses.get("200") or responses.get(200)
        if isinstance(ok, Mapping):
            content = ok.get("content") or {}
            json_content = content.get("application/json") if isinstance(content, Mapping) else None
            if isinstance(json_content, Mapping):
                return json_content.get("schema")
    return None


def _find_paths_map(doc: Mapping[str, Any]) -> Mapping[str, Any] | None:
    candidates: list[Any] = [doc.get("paths")]
    for wrapper in ("data", "spec", "openapi"):
        inner = doc.get(wrapper)
        if isinstance(inner, Mapping):
            candidates.append(inner.get("paths"))
            nested = inner.get("data")
            if isinstance(nested, Mapping):
                candidates.append(nested.get("paths"))
    for candidate in candidates:
        if isinstance(candidate, Mapping) and candidate:
            return candidate
    return None


def _is_admin_path(path: str) -> bool:
    return not any(path.startswith(prefix) for prefix in _SKIPPED_PREFIXES)


def extract_endpoints(doc: Any) -> list[Endpoint]:
    """Extract endpoints from a catalog document.

    Accepted shapes:
    - {"items": [{"method", "path", "summary", "pathParams", "queryParams"}]}
    - OpenAPI-style {"paths": {...}}, also nested under data/spec/openapi
    - fallback arrays "endpoints" or "routes" with method|verb and path|url
    - a bare list of such items

    Returns:
        Endpoints in document order. Malformed entries are skipped.
    """
    endpoints: list[Endpoint] = []

    if isinstance(doc, list):
        doc = {"items": doc}
    if not isinstance(doc, Mapping):
        return endpoints

    items = doc.get("items")
    if isinstance(items, list) and any(isinstance(i, Mapping) and i.get("path") for i in items):
        for item in items:
            if not isinstance(item, Mapping):
                continue
            method, path = item.get("method"), item.get("path")
            if not isinstance(method, str) or not isinstance(path, str):
                continue
            if method.upper() not in HTTP_METHODS or not _is_admin_path(path):
                continue
            endpoints.append(
                Endpoint.create(
                    method,
                    path,
                    summary=str(item.get("summary") or item.get("description") or ""),
                    path_params=[str(p) for p in item.get("pathParams") or []],
                    query_params=[str(p) for p in item.get("queryParams") or []],
                    schema_excerpt=summarize_schema(item.get("schema")),
                )
            )
        return endpoints

    paths = _find_paths_map(doc)
    if paths is not None:
        for path, operations in paths.items():
            if not isinstance(operations, Mapping) or not _is_admin_path(str(path)):
                continue
            for method, operation in operations.items():
                if str(method).upper() not in HTTP_METHODS or not isinstance(operation, Mapping):
                    continue
                path_params, query_params = _params_from_operation(operation)
                endpoints.append(
                    Endpoint.create(
                        str(method),
                        str(path),
                        summary=str(operation.get("summary") or operation.get("description") or ""),
                        path_params=path_params,
                        query_params=query_params,
                        schema_excerpt=summarize_schema(_schema_from_operation(operation)),
                    )
                )
        return endpoints

    for key in ("endpoints", "routes", "items"):
        fallback = doc.get(key)
        if not isinstance(fallback, list):
            continue
        for item in fallback:
            if not isinstance(item, Mapping):
                continue
            method = item.get("method") or item.get("verb")
            path = item.get("path") or item.get("url")
            if not isinstance(method, str) or not isinstance(path, str):
                continue
            if method.upper() in HTTP_METHODS and _is_admin_path(path):
                endpoints.append(Endpoint.create(method, path, summary=str(item.get("summary", ""))))
        if endpoints:
            break
    return endpoints


@dataclass(frozen=True)
class CatalogIndex:
    """Immutable snapshot of allowed operations.

    Both the canonical ("-") key and the underscore-alias key of every endpoint
    resolve to the same Endpoint. Lookups on a concrete path ("/admin/orders/
    order_123") fall back to matching "{param}" templates segment by segment.
    """

    endpoints: tuple[Endpoint, ...] = ()
    built_at: float = 0.0
    _by_key: Mapping[tuple[str, str], Endpoint] = field(
        default_factory=lambda: MappingProxyType({}), repr=False, compare=False
    )

    @classmethod
    def build(cls, endpoints: Iterable[Endpoint], built_at: float | None = None) -> "CatalogIndex":
        """Build a snapshot. The first endpoint wins when keys collide."""
        by_key: dict[tuple[str, str], Endpoint] = {}
        unique: list[Endpoint] = []
        for endpoint in endpoints:
            if endpoint.key in by_key:
                continue
            unique.append(endpoint)
            by_key[endpoint.key] = endpoint
            by_key.setdefault((endpoint.method, underscore_alias(endpoint.path)), endpoint)
            if endpoint.declared_path:
                by_key.setdefault((endpoint.method, endpoint.declared_path), endpoint)
        return cls(
            endpoints=tuple(unique),
            built_at=time.monotonic() if built_at is None else built_at,
            _by_key=MappingProxyType(by_key),
        )

    @classmethod
    def empty(cls) -> "CatalogIndex":
        """An index with no endpoints (catalog unreachable or not configured)."""
        return cls.build((), built_at=0.0)

    @classmethod
    def from_document(cls, doc: Any) -> "CatalogIndex":
        """Build a snapshot straight from a catalog document."""
        return cls.build(extract_endpoints(doc))

    def __len__(self) -> int:
        return len(self.endpoints)

    @property
    def is_empty(self) -> bool:
        """True when the snapshot holds no endpoints."""
        return not self.endpoints

    @property
    def keys(self) -> frozenset[tuple[str, str]]:
        """All lookup keys, canonical and alias."""
        return frozenset(self._by_key)

    def has(self, method: str, path: str) -> bool:
        """Exact membership test after normalization."""
        method = method.strip().upper()
        return (method, normalize_path(path)) in self._by_key or (
            method,
            clean_path(path),
        ) in self._by_key

    def get(self, method: str, path: str) -> Endpoint | None:
        """Exact lookup (declared, canonical, or alias key)."""
        method = method.strip().upper()
        return self._by_key.get((method, clean_path(path))) or self._by_key.get(
            (method, normalize_path(path))
        )

    def match(self, method: str, path: str, canonical: bool = True) -> Endpoint | None:
        """Exact lookup, then "{param}" template matching.

        Args:
            method: HTTP method.
            path: Requested path, possibly with concrete ids.
            canonical: Compare canonical paths ("_" and "-" equivalent). With
                False only the catalog's declared spelling matches.
        """
        method = method.strip().upper()
        if canonical:
            found = self.get(method, path)
            wanted = path_segments(normalize_path(path))
        else:
            declared_key = (method, clean_path(path))
            found = next(
                (e for e in self.endpoints if (e.method, e.declared_path) == declared_key), None
            )
            wanted = path_segments(clean_path(path))
        if found is not None:
            return found
        for endpoint in self.endpoints:
            if endpoint.method != method:
                continue
            template = path_segments(endpoint.path if canonical else endpoint.declared_path)
            if len(template) != len(wanted):
                continue
            if all(is_placeholder(t) or t == w for t, w in zip(template, wanted)):
                if any(is_placeholder(t) for t in template):
                    return endpoint
        return None

    def for_methods(self, methods: Iterable[str]) -> list[Endpoint]:
        """Endpoints whose method is in `methods`."""
        wanted = {m.upper() for m in methods}
        return [e for e in self.endpoints if e.method in wanted]

    def score(self, endpoint: Endpoint, tokens: list[str], method: str | None = None) -> int:
        """Lexical relevance of an endpoint for already-tokenized query words."""
        haystack = f"{endpoint.method} {endpoint.path} {endpoint.summary}".lower()
        stemmed_haystack = " ".join(tokenize(haystack))
        path_text = " ".join(tokenize(endpoint.path))
        score = 0
        for token in tokens:
            if token in stemmed_haystack:
                score += 1
            if len(token) >= 3 and token in path_text:
                score += 2
        if method and endpoint.method != method.upper():
            score -= 2
        if endpoint.method == "GET" and LIST_WORDS.intersection(tokens):
            score += 1
        return score

    def search(
        self, query: str, method: str | None = None, limit: int = 10
    ) -> list[tuple[Endpoint, int]]:
        """Rank endpoints for a free-text query.

        Args:
            query: Natural-language request or path-like text.
            method: Expected method; mismatches are penalized, not excluded.
            limit: Maximum results.

        Returns:
            (endpoint, score) pairs with positive score, best first.
        """
        tokens = tokenize(query)
        if not tokens:
            return []
        scored = [(endpoint, self.score(endpoint, tokens, method)) for endpoint in self.endpoints]
        ranked = sorted(
            (pair for pair in scored if pair[1] > 0),
            key=lambda pair: (-pair[1], len(pair[0].path)),
        )
        return ranked[:limit]
