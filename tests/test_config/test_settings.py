"""Tests for configuration settings."""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from admin_agent.config import (
    AppConfig,
    Environment,
    get_environment,
    get_settings,
    settings,
)
from admin_agent.config.env_loader import load_env_files


class TestEnvironmentDetection:
    """Test environment detection."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("production", Environment.PRODUCTION),
            ("prod", Environment.PRODUCTION),
            ("staging", Environment.STAGING),
            ("stage", Environment.STAGING),
            ("test", Environment.TEST),
            ("anything-else", Environment.DEVELOPMENT),
        ],
    )
    def test_get_environment(
        self, monkeypatch: pytest.MonkeyPatch, value: str, expected: Environment
    ) -> None:
        """APP_ENV values and aliases map to the environment enum."""
        monkeypatch.setenv("APP_ENV", value)
        assert get_environment() == expected

    def test_get_environment_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Missing APP_ENV means development."""
        monkeypatch.delenv("APP_ENV", raising=False)
        assert get_environment() == Environment.DEVELOPMENT


class TestAppConfig:
    """Test AppConfig class."""

    def test_executor_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Executor limits have the documented code defaults."""
        for name in (
            "AGENT_EXECUTOR_MAX_TOOL_LOOPS",
            "AGENT_EXECUTOR_MAX_TOOL_RESULT_CHARS",
            "AGENT_EXECUTOR_DEFAULT_LIST_LIMIT",
            "AGENT_DISAMBIGUATION_MAX_OPTIONS",
            "AGENT_RUN_RETENTION_SECONDS",
        ):
            monkeypatch.delenv(name, raising=False)
        config = AppConfig()
        assert config.executor_max_tool_loops == 4
        assert config.executor_max_tool_result_chars == 8000
        assert config.executor_default_list_limit == 50
        assert config.disambiguation_max_options == 5
        assert config.run_retention_seconds == 24 * 3600

    def test_from_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """AGENT_ prefixed variables and APP_ aliases are read."""
        monkeypatch.setenv("APP_DEBUG", "1")
        monkeypatch.setenv("APP_LOG_LEVEL", "debug")
        monkeypatch.setenv("AGENT_EXECUTOR_MAX_TOOL_LOOPS", "2")
        monkeypatch.setenv("AGENT_BACKEND_BASE_URL", "http://backend:9000/")

        config = AppConfig()
        assert config.debug is True
        assert config.log_level == "DEBUG"
        assert config.executor_max_tool_loops == 2
        assert config.backend_base_url == "http://backend:9000"

    def test_run_purge_and_binding_hooks(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Purge timings default to a day and an hour; hooks are a JSON list."""
        monkeypatch.delenv("AGENT_RUN_PURGE_GRACE_SECONDS", raising=False)
        monkeypatch.delenv("AGENT_RUN_PURGE_INTERVAL_SECONDS", raising=False)
        monkeypatch.setenv("AGENT_SERVICE_BINDING_HOOKS", '["acme.bindings:register"]')

        config = AppConfig()
        assert config.run_purge_grace_seconds == 24 * 3600
        assert config.run_purge_interval_seconds == 3600
        assert config.service_binding_hooks == ["acme.bindings:register"]

    def test_tool_loops_upper_bound(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """More than six reasoning rounds is rejected."""
        monkeypatch.setenv("AGENT_EXECUTOR_MAX_TOOL_LOOPS", "7")
        with pytest.raises(ValidationError):
            AppConfig()

    def test_invalid_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Unknown log levels are rejected."""
        monkeypatch.setenv("APP_LOG_LEVEL", "LOUD")
        with pytest.raises(ValidationError):
            AppConfig()

    def test_invalid_catalog_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Catalog URL must be http(s)."""
        monkeypatch.setenv("AGENT_CATALOG_URL", "ftp://catalog")
        with pytest.raises(ValidationError):
            AppConfig()

    def test_path_resolution(self) -> None:
        """Relative config paths are resolved to absolute."""
        config = AppConfig()
        assert config.model_config_path.is_absolute()
        assert config.service_manifest_path.is_absolute()
        assert config.model_config_path.name == "models.yaml"


class TestSingleton:
    """Test singleton pattern."""

    def test_get_settings_returns_singleton(self) -> None:
        """get_settings returns the same instance."""
        assert get_settings() is get_settings()

    def test_settings_module_export(self) -> None:
        """settings is exported from the package."""
        assert isinstance(settings, AppConfig)


class TestEnvFileLoading:
    """Test .env file loading."""

    def test_load_env_files_priority(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The most specific file wins; earlier files fill the gaps."""
        (tmp_path / ".env").write_text("ADMIN_AGENT_TEST_VAR=base\nADMIN_AGENT_ONLY_BASE=yes\n")
        (tmp_path / ".env.development.local").write_text("ADMIN_AGENT_TEST_VAR=dev_local\n")
        monkeypatch.setenv("APP_ENV", "development")
        monkeypatch.delenv("ADMIN_AGENT_TEST_VAR", raising=False)
        monkeypatch.delenv("ADMIN_AGENT_ONLY_BASE", raising=False)

        try:
            loaded = load_env_files(tmp_path)
            assert loaded == [".env", ".env.development.local"]
            assert os.getenv("ADMIN_AGENT_TEST_VAR") == "dev_local"
            assert os.getenv("ADMIN_AGENT_ONLY_BASE") == "yes"
        finally:
            os.environ.pop("ADMIN_AGENT_TEST_VAR", None)
            os.environ.pop("ADMIN_AGENT_ONLY_BASE", None)

    def test_process_environment_wins(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Explicit environment variables are never overwritten."""
        (tmp_path / ".env").write_text("ADMIN_AGENT_TEST_VAR=from_file\n")
        monkeypatch.setenv("ADMIN_AGENT_TEST_VAR", "explicit")
        load_env_files(tmp_path)
        assert os.getenv("ADMIN_AGENT_TEST_VAR") == "explicit"

    def test_no_env_files(self, tmp_path: Path) -> None:
        """A directory without .env files loads nothing."""
        assert load_env_files(tmp_path) == []
