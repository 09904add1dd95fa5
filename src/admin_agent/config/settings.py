"""Application configuration settings.

This module provides the AppConfig class and settings singleton.
"""

from pathlib import Path

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from admin_agent.config.env_loader import Environment, get_environment, load_env_files
from admin_agent.config.validators import (
    resolve_path,
    validate_base_url,
    validate_log_format,
    validate_log_level,
)

log = structlog.get_logger(__name__)


class AppConfig(BaseSettings):
    """Unified application configuration.

    Loads configuration from environment variables (AGENT_ prefix), .env files,
    and defaults. Validates all values using Pydantic.
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENT_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        protected_namespaces=(),  # model_config_path is a field
    )

    # Environment
    environment: Environment = Field(
        default_factory=get_environment, description="Current environment"
    )
    debug: bool = Field(default=False, alias="APP_DEBUG", description="Debug mode flag")

    # Application
    project_name: str = Field(default="Admin Agent", description="Project name")
    version: str = Field(default="0.1.0", description="Application version")

    # Telemetry
    log_dir: Path | None = Field(default=None, description="Directory for JSON log files")
    log_level: str = Field(default="INFO", alias="APP_LOG_LEVEL", description="Logging level")
    log_format: str = Field(
        default="console", alias="APP_LOG_FORMAT", description="Log format (json or console)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        return validate_log_level(v)

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        return validate_log_format(v)

    @field_validator("model_config_path", "service_manifest_path", mode="before")
    @classmethod
    def resolve_paths(cls, v: Path | str) -> Path:
        """Resolve relative paths to absolute."""
        return resolve_path(v)

    @field_validator("llm_base_url", "backend_base_url", "catalog_url", mode="before")
    @classmethod
    def validate_urls(cls, v: str) -> str:
        """Validate collaborator base URLs."""
        return validate_base_url(v)

    # Inference provider (OpenAI-compatible chat completions)
    llm_base_url: str = Field(
        default="https://openrouter.ai/api/v1", description="Base URL for the inference API"
    )
    llm_api_key: str | None = Field(default=None, description="Bearer token for the inference API")
    llm_timeout_seconds: int = Field(default=60, ge=1, description="Default read timeout")
    llm_max_retries: int = Field(
        default=2, ge=0, description="Retries on the same model for transient server errors"
    )
    model_config_path: Path = Field(
        default=Path("config/models.yaml"), description="Per-stage model candidates"
    )

    # Model rotation guard
    rotation_rate_limit_threshold: int = Field(
        default=1, ge=1, description="Consecutive rate limits before a model cools down"
    )
    rotation_cooldown_base_seconds: float = Field(
        default=60.0, gt=0, description="Cooldown after the first rate-limit failure"
    )
    rotation_cooldown_max_seconds: float = Field(
        default=300.0, gt=0, description="Upper bound for a model cooldown"
    )
    rotation_backoff_base_seconds: float = Field(
        default=1.0, ge=0, description="Base delay for same-model retry backoff"
    )
    rotation_backoff_max_seconds: float = Field(
        default=8.0, ge=0, description="Cap for same-model retry backoff"
    )
    rotation_min_delay_ms: int = Field(
        default=1500, ge=0, description="Minimum pacing delay between model calls"
    )
    rotation_rate_limit_delay_ms: int = Field(
        default=5000, ge=0, description="Pacing delay after a rate-limit failure"
    )

    # Action executor
    executor_max_tool_loops: int = Field(
        default=4, ge=1, le=6, description="Reasoning/acting rounds per request"
    )
    executor_max_tool_result_chars: int = Field(
        default=8000, ge=200, description="Truncation for observations fed back to the model"
    )
    executor_max_prompt_endpoints: int = Field(
        default=40, ge=1, description="Allowed operations listed in the tool prompt"
    )
    executor_default_list_limit: int = Field(
        default=50, ge=1, description="Limit applied to bare collection GETs"
    )

    # Endpoint catalog
    catalog_url: str = Field(default="", description="OpenAPI-like catalog document URL")
    catalog_auth_header: str | None = Field(
        default=None, description="Literal Authorization header for the catalog source"
    )
    catalog_token: str | None = Field(
        default=None, description="Token for the catalog source (bearer or basic)"
    )
    catalog_ttl_seconds: int = Field(default=600, ge=1, description="Catalog snapshot lifetime")
    catalog_timeout_seconds: int = Field(default=15, ge=1, description="Catalog fetch timeout")

    # Backend (administrative platform)
    backend_base_url: str = Field(
        default="http://localhost:9000", description="Base URL of the admin API"
    )
    backend_timeout_seconds: int = Field(default=30, ge=1, description="Backend request timeout")
    service_manifest_path: Path = Field(
        default=Path("config/services.yaml"), description="Service-binding manifest"
    )
    service_binding_hooks: list[str] = Field(
        default_factory=list,
        description="'module:function' hooks that bind service capabilities at startup",
    )

    # Suspend/resume
    run_retention_seconds: int = Field(
        default=24 * 3600, ge=60, description="Suspended runs older than this are expired"
    )
    run_purge_grace_seconds: int = Field(
        default=24 * 3600,
        ge=0,
        description="Expired and finished runs are kept this long before deletion",
    )
    run_purge_interval_seconds: int = Field(
        default=3600, ge=0, description="How often the service purges stale runs (0 disables)"
    )
    disambiguation_max_options: int = Field(
        default=5, ge=2, description="Options offered when a lookup is ambiguous"
    )

    # Service Configuration
    service_host: str = Field(default="0.0.0.0", description="Service host address")
    service_port: int = Field(default=9100, description="Service port number")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./admin_agent.db",
        description="SQLAlchemy async URL for the run store",
    )
    database_echo: bool = Field(default=False, description="Echo SQL queries (for debugging)")


_settings: AppConfig | None = None


def load_app_config() -> AppConfig:
    """Load and validate application configuration.

    This function:
    1. Loads .env files in priority order (via env_loader)
    2. Creates AppConfig instance (reads from environment variables)
    3. Validates all values using Pydantic

    Returns:
        Validated AppConfig instance.

    Raises:
        ValidationError: If configuration validation fails.
    """
    log.info("loading_app_config", environment=get_environment().value)

    load_env_files()

    try:
        config = AppConfig()
    except Exception as e:
        log.error("app_config_load_failed", error=str(e), error_type=type(e).__name__)
        raise

    log.info(
        "app_config_loaded",
        environment=config.environment.value,
        debug=config.debug,
        log_level=config.log_level,
        catalog_configured=bool(config.catalog_url),
        max_tool_loops=config.executor_max_tool_loops,
    )
    return config


def get_settings() -> AppConfig:
    """Get the application settings singleton.

    Returns:
        AppConfig instance (singleton pattern).
    """
    global _settings
    if _settings is None:
        _settings = load_app_config()
    return _settings
