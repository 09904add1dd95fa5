"""Validation and correction of proposed (method, path) requests.

Steps, first hit wins:
1. direct match on the declared spelling (or its "{param}" template)
2. separator alias ("-" and "_" treated as equal)
3. known resource renames ("/admin/people" -> "/admin/persons", singular -> plural)
4. lexical nearest neighbour, accepted only under CorrectionPolicy

An empty index means the catalog is unavailable: every request is allowed
provisionally and flagged as degraded.
"""

import re
from dataclasses import dataclass

from admin_agent.catalog.index import (
    CatalogIndex,
    Endpoint,
    clean_path,
    is_placeholder,
    normalize_path,
    path_segments,
    tokenize,
)
from admin_agent.telemetry import get_logger
from admin_agent.telemetry.events import (
    CATALOG_DEGRADED_PASSTHROUGH,
    ENDPOINT_CORRECTED,
    ENDPOINT_REJECTED,
)

log = get_logger(__name__)

RESOURCE_RENAMES: dict[str, str] = {
    "people": "persons",
    "contacts": "persons",
    "clients": "customers",
    "sites": "websites",
    "domains": "websites",
    "items": "products",
    "patterns": "designs",
    "templates": "designs",
    "inventory": "inventory-items",
    "stock": "inventory-items",
    "stock-items": "inventory-items",
    "vendors": "partners",
    "suppliers": "partners",
    "jobs": "tasks",
}

# prefixed ids ("cus_01H...") carry at least one digit
_ID_LIKE_RE = re.compile(
    r"^(?:[a-z]+_(?=[A-Za-z]*\d)[A-Za-z0-9]{4,}|\d+|[0-9a-f]{8}-[0-9a-f-]{27,})$"
)


@dataclass(frozen=True)
class CorrectionPolicy:
    """Tunable acceptance rules for nearest-neighbour corrections.

    Attributes:
        enabled: Whether step 4 runs at all.
        min_score: Minimum lexical score a suggestion needs.
        allow_new_params: Accept suggestions with more path parameters than the request.
        allow_fewer_segments: Accept suggestions with fewer segments than the request.
    """

    enabled: bool = True
    min_score: int = 3
    allow_new_params: bool = False
    allow_fewer_segments: bool = False


DEFAULT_POLICY = CorrectionPolicy()


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of validating one proposed request.

    Attributes:
        allowed: Whether the request may proceed.
        method: Upper-case method to use.
        path: Concrete path to call (declared separators, ids filled in).
        reason: Which step decided ("direct", "alias", "rename", "suggestion",
            "degraded", "rejected").
        endpoint: Matched catalog endpoint, if any.
        corrected_from: Original path when it was rewritten.
    """

    allowed: bool
    method: str
    path: str
    reason: str
    endpoint: Endpoint | None = None
    corrected_from: str | None = None

    @property
    def degraded(self) -> bool:
        """True when allowed only because the catalog is empty."""
        return self.reason == "degraded"


def is_id_like(segment: str) -> bool:
    """True for segments that look like record ids ("prod_01H...", "42", UUIDs)."""
    return is_placeholder(segment) or bool(_ID_LIKE_RE.match(segment))


def _concrete_path(endpoint: Endpoint, requested: str) -> str:
    """Render the endpoint's declared path with the requested path's values."""
    declared = path_segments(endpoint.declared_path or endpoint.path)
    wanted = path_segments(clean_path(requested))
    if len(declared) != len(wanted):
        return "/" + "/".join(declared)
    return "/" + "/".join(w if is_placeholder(d) else d for d, w in zip(declared, wanted))


def _rename_candidates(path: str) -> list[str]:
    segments = path_segments(clean_path(path))
    if len(segments) < 2:
        return []
    resource = segments[1].replace("_", "-")
    renamed: list[str] = []
    target = RESOURCE_RENAMES.get(resource)
    if target:
        renamed.append(target)
    if not resource.endswith("s"):
        renamed.append(resource + "s")
        renamed.append(resource + "es")
    elif resource.endswith("ies"):
        renamed.append(resource[:-3] + "y")
    else:
        renamed.append(resource[:-1])
    return ["/" + "/".join([segments[0], r, *segments[2:]]) for r in renamed]


def _fill_placeholders(endpoint: Endpoint, values: list[str]) -> str | None:
    declared = path_segments(endpoint.declared_path or endpoint.path)
    queue = list(values)
    out: list[str] = []
    for segment in declared:
        if is_placeholder(segment):
            if not queue:
                return None
            out.append(queue.pop(0))
        else:
            out.append(segment)
    return "/" + "/".join(out)


def _suggest(
    index: CatalogIndex, method: str, path: str, policy: CorrectionPolicy
) -> tuple[Endpoint, str] | None:
    requested = path_segments(clean_path(path))
    id_values = [s for s in requested[1:] if is_id_like(s)]
    literal_text = " ".join(s for s in requested[1:] if not is_id_like(s))
    tokens = tokenize(literal_text)
    if not tokens:
        return None

    ranked = sorted(
        (
            (endpoint, index.score(endpoint, tokens, method))
            for endpoint in index.for_methods([method])
        ),
        key=lambda pair: (-pair[1], len(pair[0].path)),
    )
    for endpoint, score in ranked:
        if score < policy.min_score:
            break
        candidate = path_segments(endpoint.path)
        new_params = sum(1 for s in candidate if is_placeholder(s))
        if not policy.allow_new_params and new_params > len(id_values):
            continue
        if not policy.allow_fewer_segments and len(candidate) < len(requested):
            continue
        concrete = _fill_placeholders(endpoint, id_values)
        if concrete is None:
            continue
        return endpoint, concrete
    return None


def validate_request(
    index: CatalogIndex,
    method: str,
    path: str,
    policy: CorrectionPolicy = DEFAULT_POLICY,
) -> ValidationOutcome:
    """Validate a proposed request against the catalog, correcting it if possible.

    Never raises; a request that cannot be matched is returned with allowed=False.
    """
    method = (method or "GET").strip().upper()
    canonical = normalize_path(path)

    if index.is_empty:
        log.warning(CATALOG_DEGRADED_PASSTHROUGH, method=method, path=canonical)
        return ValidationOutcome(True, method, clean_path(path), "degraded")

    endpoint = index.match(method, path, canonical=False)
    if endpoint is not None:
        return ValidationOutcome(True, method, _concrete_path(endpoint, path), "direct", endpoint)

    endpoint = index.match(method, path)
    if endpoint is not None:
        return _corrected(method, path, endpoint, path, "alias")

    for variant in _rename_candidates(path):
        endpoint = index.match(method, variant)
        if endpoint is not None:
            return _corrected(method, path, endpoint, variant, "rename")

    if policy.enabled:
        suggestion = _suggest(index, method, path, policy)
        if suggestion is not None:
            endpoint, concrete = suggestion
            log.info(
                ENDPOINT_CORRECTED,
                method=method,
                original=canonical,
                corrected=concrete,
                reason="suggestion",
            )
            return ValidationOutcome(True, method, concrete, "suggestion", endpoint, path)

    log.info(ENDPOINT_REJECTED, method=method, path=canonical)
    return ValidationOutcome(False, method, canonical, "rejected")


def _corrected(
    method: str, original: str, endpoint: Endpoint, variant: str, reason: str
) -> ValidationOutcome:
    concrete = _concrete_path(endpoint, variant)
    log.info(
        ENDPOINT_CORRECTED,
        method=method,
        original=normalize_path(original),
        corrected=concrete,
        reason=reason,
    )
    return ValidationOutcome(True, method, concrete, reason, endpoint, original)
