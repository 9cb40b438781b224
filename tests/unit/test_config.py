"""Unit tests for takeoff configuration management.

Tests AppConfig loading from environment variables, validation, and defaults.
"""

from __future__ import annotations

import pytest

from takeoff.config import AppConfig, ImportConfig, get_config, reset_config


class TestAppConfig:
    """Test AppConfig creation and validation."""

    def test_from_env_requires_database_url(self, monkeypatch):
        """Test DATABASE_URL is required."""
        monkeypatch.delenv("DATABASE_URL", raising=False)

        with pytest.raises(KeyError) as exc_info:
            AppConfig.from_env()

        assert "DATABASE_URL" in str(exc_info.value)

    def test_from_env_with_minimal_config(self, monkeypatch):
        """Test loading with only required env vars."""
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        config = AppConfig.from_env()

        assert config.db.url == "sqlite+aiosqlite:///./test.db"
        assert config.log_level == "INFO"
        assert config.db.echo is False
        assert config.imports == ImportConfig()

    def test_import_limit_defaults(self):
        """Test default import limits."""
        limits = ImportConfig()

        assert limits.max_rows == 10_000
        assert limits.max_components == 50_000
        assert limits.max_file_size_bytes == 5 * 1024 * 1024
        assert limits.max_payload_bytes == int(5.5 * 1024 * 1024)
        assert limits.batch_size == 1000

    def test_import_limits_from_env(self, monkeypatch):
        """Test IMPORT_* overrides."""
        monkeypatch.setenv("IMPORT_MAX_ROWS", "50")
        monkeypatch.setenv("IMPORT_MAX_COMPONENTS", "500")
        monkeypatch.setenv("IMPORT_BATCH_SIZE", "7")
        monkeypatch.setenv("IMPORT_AGGREGATE_MAX_RETRIES", "2")

        config = AppConfig.from_env()

        assert config.imports.max_rows == 50
        assert config.imports.max_components == 500
        assert config.imports.batch_size == 7
        assert config.imports.aggregate_max_retries == 2

    def test_db_echo_flag(self, monkeypatch):
        monkeypatch.setenv("DB_ECHO", "TRUE")
        assert AppConfig.from_env().db.echo is True


class TestGetConfig:
    """Test the cached configuration."""

    def test_singleton(self):
        assert get_config() is get_config()

    def test_reset_picks_up_environment(self, monkeypatch):
        first = get_config()
        monkeypatch.setenv("IMPORT_MAX_ROWS", "12")
        reset_config()

        second = get_config()

        assert second is not first
        assert second.imports.max_rows == 12
