"""Tests for YAML loading and the service manifest loader."""

from pathlib import Path

import pytest

from admin_agent.config import ServiceManifestError, load_service_manifest
from admin_agent.config.loader import ConfigLoadError, load_yaml_file
from admin_agent.config.service_loader import DEFAULT_CORE_MODULES, DEFAULT_CUSTOM_MODULES
from admin_agent.services.types import ServiceCategory


class TestLoadYamlFile:
    """Test the shared YAML loader."""

    def test_load_mapping(self, tmp_path: Path) -> None:
        """A mapping is returned as a dict."""
        path = tmp_path / "x.yaml"
        path.write_text("a: 1\nb: [2, 3]\n")
        assert load_yaml_file(path) == {"a": 1, "b": [2, 3]}

    def test_empty_file(self, tmp_path: Path) -> None:
        """An empty file is an empty dict."""
        path = tmp_path / "x.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}

    def test_top_level_list_rejected(self, tmp_path: Path) -> None:
        """A top-level list is not a configuration mapping."""
        path = tmp_path / "x.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigLoadError, match="Expected a mapping"):
            load_yaml_file(path)

    def test_custom_error_class(self, tmp_path: Path) -> None:
        """The caller chooses the exception type."""
        with pytest.raises(ServiceManifestError, match="not found"):
            load_yaml_file(tmp_path / "missing.yaml", error_class=ServiceManifestError)


class TestLoadServiceManifest:
    """Test the service-binding manifest loader."""

    def test_load_manifest(self, tmp_path: Path) -> None:
        """Entries keep manifest order and derive service names."""
        path = tmp_path / "services.yaml"
        path.write_text(
            """
services:
  - {key: product, category: core}
  - {key: inventory_item, category: core}
  - {key: media, source_path: modules/media}
"""
        )

        modules = load_service_manifest(path)

        assert [m.key for m in modules] == ["product", "inventory_item", "media"]
        assert modules[1].service_name == "inventoryItemService"
        assert modules[2].category == ServiceCategory.CUSTOM

    def test_missing_manifest_uses_defaults(self, tmp_path: Path) -> None:
        """No manifest means the built-in module set."""
        modules = load_service_manifest(tmp_path / "none.yaml")

        keys = [m.key for m in modules]
        assert keys == list(DEFAULT_CORE_MODULES) + list(DEFAULT_CUSTOM_MODULES)

    def test_empty_manifest_uses_defaults(self, tmp_path: Path) -> None:
        """A manifest without services means the built-in module set."""
        path = tmp_path / "services.yaml"
        path.write_text("services: []\n")

        assert len(load_service_manifest(path)) == len(DEFAULT_CORE_MODULES) + len(
            DEFAULT_CUSTOM_MODULES
        )

    def test_invalid_manifest(self, tmp_path: Path) -> None:
        """Entries without a key are rejected."""
        path = tmp_path / "services.yaml"
        path.write_text("services:\n  - {category: core}\n")

        with pytest.raises(ServiceManifestError, match="validation failed"):
            load_service_manifest(path)

    def test_shipped_manifest_is_valid(self) -> None:
        """The repository's config/services.yaml loads."""
        path = Path(__file__).parents[2] / "config" / "services.yaml"

        modules = load_service_manifest(path)

        assert "order" in [m.key for m in modules]
        assert all(m.service_name.endswith("Service") for m in modules)
