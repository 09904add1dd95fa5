"""Field validators shared by AppConfig and the bootstrap helpers."""

from pathlib import Path

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("console", "json")

# src/admin_agent/config -> repository root
PROJECT_ROOT = Path(__file__).resolve().parents[3]


def _one_of(name: str, value: str, allowed: tuple[str, ...], normalized: str) -> str:
    if normalized not in allowed:
        raise ValueError(f"{name} must be one of {', '.join(allowed)}, got {value!r}")
    return normalized


def validate_log_level(value: str) -> str:
    """Uppercased log level; raises ValueError for unknown levels."""
    return _one_of("log_level", value, LOG_LEVELS, str(value).strip().upper())


def validate_log_format(value: str) -> str:
    """Renderer name, "console" or "json"."""
    return _one_of("log_format", value, LOG_FORMATS, str(value).strip().lower())


def validate_base_url(value: str) -> str:
    """Collaborator base URL without trailing slash.

    An empty value is kept as "" and means the collaborator is not configured
    (no catalog URL puts the catalog in degraded mode).

    Raises:
        ValueError: If a non-empty URL has no http(s) scheme.
    """
    value = (value or "").strip()
    if value and not value.startswith(("http://", "https://")):
        raise ValueError(f"URL must start with http:// or https://, got {value!r}")
    return value.rstrip("/")


def resolve_path(value: Path | str) -> Path:
    """Absolute path; relative config paths are taken from the repository root."""
    path = Path(value)
    return path.resolve() if path.is_absolute() else (PROJECT_ROOT / path).resolve()
