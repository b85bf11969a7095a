"""Unit tests for Config class configuration properties.

Each property is tested for:
- Default values when no environment variables set
- Environment variable overrides
- Invalid value handling (fallback to defaults with warning)
"""

import logging
from pathlib import Path

import pytest

from src.utils.config import Config, get_config, reset_config


class TestDatabaseConfigProperties:
    """Tests for database configuration properties."""

    def setup_method(self):
        """Reset config singleton before each test."""
        reset_config()

    def teardown_method(self):
        """Clean up after each test."""
        reset_config()

    def test_db_timeout_default(self, monkeypatch):
        """Default db_timeout is 30."""
        monkeypatch.delenv("CAKE_TRACKER_DB_TIMEOUT", raising=False)
        config = Config()
        assert config.db_timeout == 30

    def test_db_timeout_env_override(self, monkeypatch):
        """db_timeout can be overridden via environment variable."""
        monkeypatch.setenv("CAKE_TRACKER_DB_TIMEOUT", "60")
        config = Config()
        assert config.db_timeout == 60

    @pytest.mark.parametrize("raw", ["invalid", "0", "-5"])
    def test_db_timeout_invalid_uses_default(self, monkeypatch, caplog, raw):
        """Invalid db_timeout falls back to default with warning."""
        monkeypatch.setenv("CAKE_TRACKER_DB_TIMEOUT", raw)
        with caplog.at_level(logging.WARNING):
            config = Config()
            assert config.db_timeout == 30
        assert "Invalid CAKE_TRACKER_DB_TIMEOUT" in caplog.text

    def test_production_database_in_documents(self):
        config = Config("production")
        assert config.is_production
        assert config.database_path == Path.home() / "Documents" / "CakeTracker" / "cake_tracker.db"

    def test_development_database_in_project_data(self):
        config = Config("development")
        assert config.is_development
        assert config.database_path.parent.name == "data"
        assert config.database_url.startswith("sqlite:///")
        assert config.database_url.endswith("data/cake_tracker.db")

    def test_app_metadata(self):
        config = Config()
        assert config.app_name == "Cake Order Tracker"
        assert config.app_version
        assert config.database_version


class TestConfigSingleton:
    """Tests for get_config() and reset_config()."""

    def setup_method(self):
        reset_config()

    def teardown_method(self):
        reset_config()

    def test_environment_from_env_var(self, monkeypatch):
        monkeypatch.setenv("CAKE_TRACKER_ENV", "development")
        assert get_config().is_development

    def test_singleton_keeps_first_environment(self, caplog):
        first = get_config("development")
        with caplog.at_level(logging.WARNING):
            second = get_config("production")
        assert second is first
        assert second.is_development
        assert "singleton" in caplog.text

    def test_reset_creates_new_instance(self):
        first = get_config("development")
        reset_config()
        assert get_config("development") is not first
