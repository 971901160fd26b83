"""Runtime configuration loaded from environment variables and ``.env``."""

import logging
from enum import Enum
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shieldpool.exceptions import ConfigurationError
from shieldpool.utils.field import FIELD_MODULUS

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class HashBackend(str, Enum):
    """Available field hash backends."""
    POSEIDON2 = "poseidon2"
    SHA256 = "sha256"


class Settings(BaseSettings):
    """
    Client settings.

    Every field can be overridden with a ``SHIELDPOOL_``-prefixed environment
    variable, e.g. ``SHIELDPOOL_TREE_DEPTH=24``.
    """

    model_config = SettingsConfigDict(env_prefix="SHIELDPOOL_", extra="ignore")

    tree_depth: int = Field(20, ge=1, le=32, description="Merkle tree depth")
    pool_id: int = Field(0, ge=0, description="Pool (vault) identifier bound into commitments")
    root_history_size: int = Field(32, ge=1, description="Confirmed roots kept in memory")
    hash_backend: HashBackend = Field(HashBackend.POSEIDON2, description="Field hash backend")
    database_url: str = Field("sqlite:///shieldpool.db", description="SQLAlchemy database URL")
    log_level: str = Field("INFO", description="Root log level")

    @field_validator("pool_id")
    @classmethod
    def _pool_id_in_field(cls, value: int) -> int:
        if value >= FIELD_MODULUS:
            raise ValueError("pool_id must be below the field modulus")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level {value!r}")
        return level


_settings: Optional[Settings] = None


def get_settings(env_file: str = ".env") -> Settings:
    """
    Get or create the global settings instance.

    Values already present in the environment win over ``env_file``.

    Raises:
        ConfigurationError: If a setting fails validation
    """
    global _settings
    if _settings is None:
        load_dotenv(env_file, override=False)
        try:
            _settings = Settings()
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings: {e}") from e
    return _settings


def reset_settings():
    """Reset the global settings instance."""
    global _settings
    _settings = None


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Set up root logging from settings."""
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("shieldpool").setLevel(level)
