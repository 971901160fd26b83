"""Tests for settings and logging configuration."""

import logging

import pytest

from shieldpool.config import HashBackend, Settings, configure_logging, get_settings, reset_settings
from shieldpool.exceptions import ConfigurationError
from shieldpool.utils.field import FIELD_MODULUS


@pytest.fixture
def no_env_file(tmp_path):
    """Path to a .env file that does not exist."""
    return str(tmp_path / "missing.env")


class TestSettings:
    """Tests for Settings defaults and validation."""

    def test_defaults(self):
        """Test default values."""
        settings = Settings()
        assert settings.tree_depth == 20
        assert settings.pool_id == 0
        assert settings.root_history_size == 32
        assert settings.hash_backend == HashBackend.POSEIDON2
        assert settings.log_level == "INFO"

    def test_log_level_normalized(self):
        """Test log levels are upper-cased."""
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_values(self):
        """Test out-of-range values fail validation."""
        with pytest.raises(ValueError):
            Settings(tree_depth=33)
        with pytest.raises(ValueError):
            Settings(pool_id=FIELD_MODULUS)
        with pytest.raises(ValueError):
            Settings(log_level="verbose")
        with pytest.raises(ValueError):
            Settings(hash_backend="md5")


class TestGetSettings:
    """Tests for the cached global settings."""

    def test_environment_prefix(self, monkeypatch, no_env_file):
        """Test SHIELDPOOL_ variables override defaults."""
        monkeypatch.setenv("SHIELDPOOL_TREE_DEPTH", "24")
        monkeypatch.setenv("SHIELDPOOL_HASH_BACKEND", "sha256")

        settings = get_settings(no_env_file)
        assert settings.tree_depth == 24
        assert settings.hash_backend == HashBackend.SHA256

    def test_cached(self, no_env_file):
        """Test the same instance is returned until reset."""
        first = get_settings(no_env_file)
        assert get_settings(no_env_file) is first
        reset_settings()
        assert get_settings(no_env_file) is not first

    def test_dotenv_file(self, monkeypatch, tmp_path):
        """Test values are read from a .env file."""
        # Registers the variable with monkeypatch so load_dotenv's write is undone.
        monkeypatch.setenv("SHIELDPOOL_POOL_ID", "0")
        monkeypatch.delenv("SHIELDPOOL_POOL_ID")
        env_file = tmp_path / ".env"
        env_file.write_text("SHIELDPOOL_POOL_ID=9\n")

        assert get_settings(str(env_file)).pool_id == 9

    def test_invalid_environment(self, monkeypatch, no_env_file):
        """Test validation errors surface as ConfigurationError."""
        monkeypatch.setenv("SHIELDPOOL_TREE_DEPTH", "0")
        with pytest.raises(ConfigurationError):
            get_settings(no_env_file)


class TestLogging:
    """Tests for configure_logging."""

    def test_package_logger_level(self):
        """Test the package logger follows settings.log_level."""
        configure_logging(Settings(log_level="warning"))
        assert logging.getLogger("shieldpool").level == logging.WARNING
        configure_logging(Settings(log_level="debug"))
        assert logging.getLogger("shieldpool").level == logging.DEBUG
