"""Environment variable file loader with priority-based loading.

Later files override earlier ones; explicit process environment always wins.
"""

import os
from enum import Enum
from pathlib import Path

from dotenv import dotenv_values

from admin_agent.telemetry import get_logger

log = get_logger(__name__)


class Environment(str, Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


def get_environment() -> Environment:
    """Detect current environment from the APP_ENV environment variable.

    Returns:
        Environment enum value. Unknown or missing values map to DEVELOPMENT.

    Note: environment detection happens before settings are loaded, so it
    reads os.environ directly.
    """
    app_env = os.getenv("APP_ENV", "").lower()

    if app_env in ("production", "prod"):
        return Environment.PRODUCTION
    elif app_env in ("staging", "stage"):
        return Environment.STAGING
    elif app_env == "test":
        return Environment.TEST
    else:
        return Environment.DEVELOPMENT


def load_env_files(project_root: Path | None = None) -> list[str]:
    """Load .env files in priority order.

    Priority order (highest to lowest):
    1. `.env.{environment}.local`
    2. `.env.{environment}`
    3. `.env.local`
    4. `.env`

    Args:
        project_root: Path to project root. If None, detects from current file location.

    Returns:
        Relative names of the files that were loaded.
    """
    if project_root is None:
        project_root = Path(__file__).parent.parent.parent.parent

    env_name = get_environment().value

    env_files = [
        project_root / ".env",
        project_root / ".env.local",
        project_root / f".env.{env_name}",
        project_root / f".env.{env_name}.local",
    ]

    # Explicit process environment is never overwritten by a file
    explicit = set(os.environ)
    loaded_files = []
    for env_file in env_files:
        if env_file.exists():
            for key, value in dotenv_values(env_file).items():
                if key not in explicit and value is not None:
                    os.environ[key] = value
            loaded_files.append(str(env_file.relative_to(project_root)))

    if loaded_files:
        log.info("env_files_loaded", environment=env_name, files=loaded_files)
    else:
        log.debug("no_env_files_found", environment=env_name, project_root=str(project_root))
    return loaded_files
