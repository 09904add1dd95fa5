"""Load and validate model-rotation configuration from YAML.

This module provides the main entry point for loading stage candidates:
- Loads config/models.yaml
- Validates against the Pydantic schema
- Returns a typed ModelConfig object
"""

from pathlib import Path

import structlog
from pydantic import ValidationError

from admin_agent.config.loader import ConfigLoadError, format_validation_errors, load_yaml_file
from admin_agent.llm_client.models import ModelConfig

log = structlog.get_logger(__name__)


class ModelConfigError(ConfigLoadError):
    """Raised when model configuration cannot be loaded or is invalid."""

    pass


def load_model_config(config_path: Path | str | None = None) -> ModelConfig:
    """Load and validate model configuration from YAML file.

    Args:
        config_path: Path to models.yaml. If None, uses settings.model_config_path.

    Returns:
        Validated ModelConfig object.

    Raises:
        ModelConfigError: If configuration cannot be loaded, parsed, or validated.

    Example:
        >>> config = load_model_config()
        >>> config.candidates_for("response_generation")[0]
        'meta-llama/llama-3.3-70b-instruct:free'
    """
    if config_path is None:
        from admin_agent.config import settings  # noqa: PLC0415

        config_path = settings.model_config_path
    config_path = Path(config_path)

    if not config_path.is_file():
        raise ModelConfigError(f"Model config file not found: {config_path}")

    log.info("loading_model_config", config_path=str(config_path))

    content = load_yaml_file(config_path, error_class=ModelConfigError)
    if not content:
        log.warning("model_config_empty", config_path=str(config_path))
        return ModelConfig()

    try:
        config = ModelConfig.model_validate(content)
    except ValidationError as e:
        raise ModelConfigError(
            f"Model configuration validation failed:\n{format_validation_errors(e.errors())}"
        ) from None

    log.info(
        "model_config_loaded",
        stages=sorted(config.stages),
        fallback_count=len(config.fallback_models),
    )
    return config
