"""Unit tests — Settings.load, get_settings, override_settings."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

import safeact.config as cfg_module
from safeact.config import Settings, get_settings, override_settings
from safeact.exceptions import ConfigError


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.mark.unit
class TestDefaults:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.approval.timeout_seconds == 300.0
        assert settings.planner.max_steps == 8
        assert settings.executor.max_retries == 1
        assert settings.audit.output_max_bytes == 1024
        assert "api.github.com" in settings.sandbox.network.allowed_domains
        assert "rm -rf" in settings.sandbox.shell.denied_patterns

    def test_load_without_files(self) -> None:
        with patch.object(Path, "exists", return_value=False):
            settings = Settings.load()
        assert settings.logging.level == "info"


@pytest.mark.unit
class TestSettingsLoad:
    def test_load_from_custom_config_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "planner:\n  max_steps: 5\n"
            "sandbox:\n  shell:\n    safe_commands: [ls]\n"
            "audit:\n  db_path: ~/audit.db\n"
        )

        settings = Settings.load(config_file=config_file)

        assert settings.planner.max_steps == 5
        assert settings.sandbox.shell.safe_commands == ["ls"]
        assert settings.audit.db_path == Path("~/audit.db").expanduser()

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Config file not found"):
            Settings.load(config_file=tmp_path / "absent.yaml")

    def test_invalid_yaml_raises(self, tmp_path: Path) -> None:
        config_file = tmp_path / "broken.yaml"
        config_file.write_text("planner: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            Settings.load(config_file=config_file)

    def test_non_mapping_raises(self, tmp_path: Path) -> None:
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="must contain a mapping"):
            Settings.load(config_file=config_file)

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        assert Settings.load(config_file=config_file).planner.max_steps == 8

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SAFEACT_EXECUTOR__MAX_RETRIES", "3")
        monkeypatch.setenv("SAFEACT_LOGGING__FORMAT", "json")
        settings = Settings()
        assert settings.executor.max_retries == 3
        assert settings.logging.format == "json"

    def test_out_of_range_value_rejected(self, tmp_path: Path) -> None:
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("executor:\n  max_concurrency: 0\n")
        with pytest.raises(ValueError):
            Settings.load(config_file=config_file)


@pytest.mark.unit
class TestSingleton:
    def test_get_settings_cached(self) -> None:
        original = cfg_module._settings
        try:
            mock_settings = Settings()
            override_settings(mock_settings)
            assert get_settings() is mock_settings
        finally:
            cfg_module._settings = original

    def test_override_none_forces_reload(self) -> None:
        original = cfg_module._settings
        try:
            override_settings(None)
            with patch.object(Path, "exists", return_value=False):
                assert isinstance(get_settings(), Settings)
        finally:
            cfg_module._settings = original
