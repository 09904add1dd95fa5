"""Endpoint catalog: the known-safe set of admin API operations.

Exports the immutable CatalogIndex, the cache that owns the current snapshot,
and request validation with alias/rename/nearest-neighbour correction.
"""

from admin_agent.catalog.index import (
    ADMIN_ROOT,
    WRITE_METHODS,
    CatalogIndex,
    Endpoint,
    clean_path,
    extract_endpoints,
    infer_method,
    normalize_path,
    summarize_schema,
    tokenize,
)
from admin_agent.catalog.source import (
    CatalogCache,
    CatalogFetchError,
    CatalogSource,
    build_catalog_auth_header,
    get_catalog_cache,
)
from admin_agent.catalog.validator import (
    DEFAULT_POLICY,
    RESOURCE_RENAMES,
    CorrectionPolicy,
    ValidationOutcome,
    validate_request,
)

__all__ = [
    "ADMIN_ROOT",
    "WRITE_METHODS",
    "CatalogIndex",
    "Endpoint",
    "clean_path",
    "extract_endpoints",
    "infer_method",
    "normalize_path",
    "summarize_schema",
    "tokenize",
    "CatalogCache",
    "CatalogFetchError",
    "CatalogSource",
    "build_catalog_auth_header",
    "get_catalog_cache",
    "DEFAULT_POLICY",
    "RESOURCE_RENAMES",
    "CorrectionPolicy",
    "ValidationOutcome",
    "validate_request",
]
