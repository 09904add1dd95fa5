"""Load the service-binding manifest (config/services.yaml).

The manifest lists canonical backend service keys and their category. When no
manifest is present the platform's default module set is used.
"""

from pathlib import Path

import structlog
from pydantic import ValidationError

from admin_agent.config.loader import ConfigLoadError, format_validation_errors, load_yaml_file
from admin_agent.services.types import ModuleInfo, ServiceCategory, ServiceManifest

log = structlog.get_logger(__name__)

DEFAULT_CORE_MODULES = (
    "order",
    "customer",
    "product",
    "inventory",
    "fulfillment",
    "payment",
    "cart",
    "region",
    "store",
    "user",
)
DEFAULT_CUSTOM_MODULES = ("design", "partner", "media", "tasks", "person")


class ServiceManifestError(ConfigLoadError):
    """Raised when the service manifest exists but cannot be loaded or is invalid."""

    pass


def default_modules() -> list[ModuleInfo]:
    """Return the built-in module set used when no manifest is available."""
    modules = [
        ModuleInfo(key=key, category=ServiceCategory.CORE, source_path="@platform/core")
        for key in DEFAULT_CORE_MODULES
    ]
    modules.extend(
        ModuleInfo(key=key, category=ServiceCategory.CUSTOM, source_path=f"modules/{key}")
        for key in DEFAULT_CUSTOM_MODULES
    )
    return modules


def load_service_manifest(manifest_path: Path | str | None = None) -> list[ModuleInfo]:
    """Load and validate the service manifest.

    Args:
        manifest_path: Path to services.yaml. If None, uses settings.service_manifest_path.

    Returns:
        Module descriptors in manifest order. Falls back to default_modules() when
        the file does not exist or lists no services.

    Raises:
        ServiceManifestError: If the file exists but is malformed.
    """
    if manifest_path is None:
        from admin_agent.config import settings  # noqa: PLC0415

        manifest_path = settings.service_manifest_path
    manifest_path = Path(manifest_path)

    if not manifest_path.is_file():
        log.info("service_manifest_missing_using_defaults", path=str(manifest_path))
        return default_modules()

    content = load_yaml_file(manifest_path, error_class=ServiceManifestError)
    try:
        manifest = ServiceManifest.model_validate(content)
    except ValidationError as e:
        raise ServiceManifestError(
            f"Service manifest validation failed:\n{format_validation_errors(e.errors())}"
        ) from None

    if not manifest.services:
        log.warning("service_manifest_empty", path=str(manifest_path))
        return default_modules()

    log.info("service_manifest_loaded", path=str(manifest_path), count=len(manifest.services))
    return manifest.services
