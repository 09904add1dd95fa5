"""Backend service registry and capability bindings."""

from admin_agent.services.registry import (
    RegistryCache,
    ServiceRegistry,
    find_closest_match,
    get_registry_cache,
    normalize_service_name,
    register_service_bindings,
)
from admin_agent.services.types import (
    MethodTable,
    ModuleInfo,
    ServiceCategory,
    ServiceManifest,
    to_camel_case,
)

__all__ = [
    "MethodTable",
    "ModuleInfo",
    "RegistryCache",
    "ServiceCategory",
    "ServiceManifest",
    "ServiceRegistry",
    "find_closest_match",
    "get_registry_cache",
    "normalize_service_name",
    "register_service_bindings",
    "to_camel_case",
]
