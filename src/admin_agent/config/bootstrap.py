"""Logging settings read before AppConfig exists.

The first get_logger() call configures logging, usually before the settings
singleton is built, so APP_LOG_LEVEL and APP_LOG_FORMAT are read from the
process environment directly. Invalid values fall back to the defaults.

No telemetry imports here (circular).
"""

from __future__ import annotations

import os
from collections.abc import Callable

from admin_agent.config.validators import validate_log_format, validate_log_level


def _from_env(name: str, default: str, validate: Callable[[str], str]) -> str:
    try:
        return validate(os.getenv(name, default))
    except ValueError:
        return validate(default)


def get_bootstrap_log_level(default: str = "INFO") -> str:
    """APP_LOG_LEVEL, uppercased, or `default`."""
    return _from_env("APP_LOG_LEVEL", default, validate_log_level)


def get_bootstrap_log_format(default: str = "console") -> str:
    """APP_LOG_FORMAT ("json" or "console"), or `default`."""
    return _from_env("APP_LOG_FORMAT", default, validate_log_format)
