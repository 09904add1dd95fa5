"""Unified configuration management for the admin agent.

This module provides a single source of truth for all configuration,
integrating environment variables, YAML files, and defaults.
"""

from admin_agent.config.env_loader import Environment, get_environment
from admin_agent.config.loader import ConfigLoadError
from admin_agent.config.model_loader import ModelConfigError, load_model_config
from admin_agent.config.service_loader import ServiceManifestError, load_service_manifest
from admin_agent.config.settings import AppConfig, get_settings, load_app_config

# Singleton instance
settings = get_settings()

__all__ = [
    # App-level settings
    "settings",
    "AppConfig",
    "get_settings",
    "load_app_config",
    "Environment",
    "get_environment",
    # Configuration loaders
    "load_model_config",
    "load_service_manifest",
    # Exception classes
    "ConfigLoadError",
    "ModelConfigError",
    "ServiceManifestError",
]
