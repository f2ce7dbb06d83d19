"""
Unit tests for settings and document loading.

Tests cover:
- Settings defaults and environment overrides
- Default rules/seed documents from JSON and YAML files
- Logging configuration
"""

import json
import logging

import pytest

from engine.firemock_engine.config import Settings, configure_logging, get_settings
from engine.firemock_engine.errors import RulesSyntaxError
from engine.firemock_engine.rules.loader import load_document, load_rules


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch):
        """Nothing needs configuring."""
        for name in ("DEFAULT_APP_NAME", "RULES_FILE", "DATA_FILE", "LOG_LEVEL"):
            monkeypatch.delenv(f"FIREMOCK_{name}", raising=False)

        settings = Settings()

        assert settings.default_app_name == "[DEFAULT]"
        assert settings.rules_file is None
        assert settings.data_file is None
        assert settings.log_level == "WARNING"
        assert settings.default_rules() is None
        assert settings.default_data() is None

    def test_environment_overrides(self, monkeypatch, tmp_path):
        """FIREMOCK_ variables are read."""
        monkeypatch.setenv("FIREMOCK_DEFAULT_APP_NAME", "main")
        monkeypatch.setenv("FIREMOCK_DATA_FILE", str(tmp_path / "seed.json"))

        settings = Settings()

        assert settings.default_app_name == "main"
        assert settings.data_file == tmp_path / "seed.json"

    def test_get_settings_is_cached(self):
        """The process-wide settings are created once."""
        assert get_settings() is get_settings()

    def test_default_rules_from_yaml(self, tmp_path):
        """Rules files may be YAML."""
        path = tmp_path / "rules.yaml"
        path.write_text(
            "rules:\n"
            "  users:\n"
            "    $uid:\n"
            "      .read: \"auth != null\"\n"
        )
        rules = Settings(rules_file=path).default_rules()

        assert not rules.can_read(None, None, ("users", "42"), 0).ok
        assert rules.can_read(None, {"uid": "42"}, ("users", "42"), 0).ok

    def test_default_data_from_json(self, tmp_path):
        """Seed files may be JSON."""
        path = tmp_path / "seed.json"
        path.write_text(json.dumps({"users": {"42": {"name": "Ann"}}}))

        assert Settings(data_file=path).default_data() == {"users": {"42": {"name": "Ann"}}}


class TestLoader:
    """Tests for load_document and load_rules."""

    def test_rules_json_file(self, tmp_path):
        """database.rules.json style files load."""
        path = tmp_path / "database.rules.json"
        path.write_text(json.dumps({"rules": {".read": True, ".write": "auth != null"}}))

        rules = load_rules(path)

        assert rules.can_read(None, None, (), 0).ok
        assert not rules.can_write(None, None, None, (), 0).ok

    def test_empty_document(self, tmp_path):
        """An empty file is None."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_document(path) is None

    def test_unparsable_rules_raise(self, tmp_path):
        """Unparsable files are a rules syntax error."""
        path = tmp_path / "broken.yaml"
        path.write_text("rules: [unclosed")

        with pytest.raises(RulesSyntaxError, match="Cannot parse rules file"):
            load_rules(path)

    def test_missing_file_raises(self, tmp_path):
        """Missing files are reported as such."""
        with pytest.raises(FileNotFoundError):
            load_document(tmp_path / "nope.json")


class TestLogging:
    """Tests for configure_logging()."""

    def test_sets_package_level(self):
        """The engine logger gets the configured level."""
        logger = logging.getLogger("engine.firemock_engine")
        previous = logger.level
        try:
            configure_logging(Settings(log_level="debug"))
            assert logger.level == logging.DEBUG
        finally:
            logger.setLevel(previous)
