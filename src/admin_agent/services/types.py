"""Type definitions for the service registry."""

from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, Field, model_validator


class ServiceCategory(str, Enum):
    """Where a backend service comes from."""

    CORE = "core"
    CUSTOM = "custom"


def to_camel_case(key: str) -> str:
    """Convert a snake/kebab key to camelCase ("inventory_item" -> "inventoryItem")."""
    parts = [p for p in key.replace("-", "_").split("_") if p]
    if not parts:
        return ""
    return parts[0].lower() + "".join(p[:1].upper() + p[1:].lower() for p in parts[1:])


class ModuleInfo(BaseModel):
    """One backend service descriptor from the service-binding manifest.

    Attributes:
        key: Canonical service key (e.g., "product", "inventory_item").
        service_name: Conventional service name, defaults to camelCase(key) + "Service".
        category: core (platform) or custom (project module).
        source_path: Where the implementation lives, informational only.
    """

    key: str = Field(..., min_length=1)
    service_name: str = ""
    category: ServiceCategory = ServiceCategory.CUSTOM
    source_path: str | None = None

    @model_validator(mode="after")
    def _default_service_name(self) -> "ModuleInfo":
        self.key = self.key.strip().lower()
        if not self.service_name:
            self.service_name = f"{to_camel_case(self.key)}Service"
        return self


class ServiceManifest(BaseModel):
    """Validated shape of config/services.yaml."""

    services: list[ModuleInfo] = Field(default_factory=list)


# Method name -> async or sync callable taking positional arguments.
MethodTable = dict[str, Callable[..., Any]]
