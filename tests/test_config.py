"""Tests for configuration loading."""

from pathlib import Path

import pytest

from porttop.config import Settings, load_settings, merge_presets, settings_from_mapping
from porttop.errors import ConfigError
from porttop.filters import SortKey
from porttop.processor import DEFAULT_PRESETS, TypePreset


class TestLoadSettings:
    """Tests for reading the YAML file."""

    def test_missing_default_file_gives_defaults(self, monkeypatch, tmp_path):
        """Test no config file means default settings."""
        monkeypatch.setattr("porttop.config.DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")
        settings = load_settings()

        assert settings == Settings()
        assert settings.refresh_interval == 2.0
        assert settings.max_concurrency == 10

    def test_explicit_missing_file(self, tmp_path):
        """Test a named config file must exist."""
        with pytest.raises(ConfigError):
            load_settings(tmp_path / "nope.yaml")

    def test_overrides(self, tmp_path):
        """Test values in the file replace the defaults."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "refresh_interval: 5\n"
            "cache_ttl: 60\n"
            "sort: PID\n"
            "show_details: false\n"
            "log_file: ~/porttop.log\n"
            "log_level: DEBUG\n"
        )

        settings = load_settings(path)

        assert settings.refresh_interval == 5.0
        assert settings.cache_ttl == 60.0
        assert settings.sort is SortKey.PID
        assert settings.show_details is False
        assert settings.log_file == Path("~/porttop.log").expanduser()
        assert settings.log_level == "debug"

    def test_empty_file(self, tmp_path):
        """Test an empty file is the same as no settings."""
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_settings(path) == Settings()

    def test_invalid_yaml(self, tmp_path):
        """Test malformed YAML is a ConfigError."""
        path = tmp_path / "config.yaml"
        path.write_text("refresh_interval: [1, 2\n")
        with pytest.raises(ConfigError):
            load_settings(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        """Test a list document is rejected."""
        path = tmp_path / "config.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError):
            load_settings(path)


class TestSettingsFromMapping:
    """Tests for validation."""

    def test_values_clamped(self):
        """Test values below their minimum are raised to it."""
        settings = settings_from_mapping({"refresh_interval": 0, "max_concurrency": -3, "cache_size": 0})

        assert settings.refresh_interval == 0.1
        assert settings.max_concurrency == 1
        assert settings.cache_size == 1

    @pytest.mark.parametrize(
        "data",
        [
            {"unknown_key": 1},
            {"refresh_interval": "fast"},
            {"sort": "cpu"},
            {"log_level": "loud"},
            {"color": "yes"},
            {"type_presets": [{"priority": 5}]},
        ],
    )
    def test_invalid(self, data):
        """Test invalid values raise ConfigError."""
        with pytest.raises(ConfigError):
            settings_from_mapping(data)

    def test_type_presets_merged(self):
        """Test configured presets are added to the defaults."""
        settings = settings_from_mapping(
            {"type_presets": [{"name": "queue", "priority": 95, "ports": [5672]}]}
        )

        names = [p.name for p in settings.type_presets]
        assert "queue" in names
        assert "database" in names


def test_merge_presets_replaces_by_name():
    """Test a preset with an existing name replaces it."""
    custom = TypePreset(name="database", priority=100, ports=(9999,))
    merged = merge_presets(DEFAULT_PRESETS, (custom,))

    database = next(p for p in merged if p.name == "database")
    assert database.ports == (9999,)
    assert len(merged) == len(DEFAULT_PRESETS)
