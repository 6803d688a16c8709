"""
Centralized configuration management for PowerScale.

This module provides type-safe, validated configuration using Pydantic.
Every setting can come from the environment or a .env file.
"""

from pathlib import Path
from typing import Optional, Union
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..constants import (
    DEFAULT_DATA_DIR,
    PRIMARY_DB_FILENAME,
    BACKUP_FILENAME,
    SESSION_FILENAME,
    LOG_FILENAME,
    JIKAN_BASE_URL,
    JIKAN_RATE_LIMIT_DELAY,
    JIKAN_TIMEOUT_SECONDS,
)


class StorageConfig(BaseSettings):
    """Where the primary store, backup store and saved ranking session live"""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    data_dir: Path = Field(default=Path(DEFAULT_DATA_DIR), description="Directory holding all library data")
    primary_db_name: str = Field(default=PRIMARY_DB_FILENAME, description="SQLite file for the primary store")
    backup_file_name: str = Field(default=BACKUP_FILENAME, description="JSON file for the backup store")
    session_file_name: str = Field(default=SESSION_FILENAME, description="JSON file for a saved ranking session")

    @property
    def primary_path(self) -> Path:
        return self.data_dir / self.primary_db_name

    @property
    def backup_path(self) -> Path:
        return self.data_dir / self.backup_file_name

    @property
    def session_path(self) -> Path:
        return self.data_dir / self.session_file_name


class JikanConfig(BaseSettings):
    """Configuration for Jikan (MyAnimeList) API"""

    model_config = SettingsConfigDict(
        env_prefix="JIKAN_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    base_url: str = Field(default=JIKAN_BASE_URL, description="Jikan API base URL")
    rate_limit_delay: float = Field(default=JIKAN_RATE_LIMIT_DELAY, description="Rate limit delay in seconds")
    timeout: int = Field(default=JIKAN_TIMEOUT_SECONDS, description="API timeout in seconds")


class LoggingConfig(BaseSettings):
    """Configuration for logging behavior"""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    file_level: str = Field(default="INFO", description="File logging level")
    console_level: str = Field(default="WARNING", description="Console logging level")
    log_file: str = Field(default=LOG_FILENAME, description="Log file path")

    @field_validator('file_level', 'console_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log level is one of the allowed values"""
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()


class RankingConfig(BaseSettings):
    """Configuration for head-to-head ranking sessions"""

    model_config = SettingsConfigDict(
        env_prefix="RANKING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    autosave: bool = Field(default=True, description="Snapshot the session after every recorded pair")
    seed: Optional[int] = Field(default=None, description="Seed for pair shuffling and skip coin-flips")


class LibraryConfig(BaseSettings):
    """Configuration for list management"""

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Strict mode turns an invalid placement into an exception instead of a logged no-op
    strict_status: bool = Field(default=False, description="Raise on items that cannot be filed")


class PowerScaleConfig(BaseSettings):
    """
    Main configuration class for PowerScale.

    This class serves as the single source of truth for all configuration.
    It automatically loads from environment variables and .env files.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    storage: StorageConfig = Field(default_factory=StorageConfig, description="Storage locations")
    jikan: JikanConfig = Field(default_factory=JikanConfig, description="Jikan API configuration")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging configuration")
    ranking: RankingConfig = Field(default_factory=RankingConfig, description="Ranking configuration")
    library: LibraryConfig = Field(default_factory=LibraryConfig, description="List management configuration")

    verbose: bool = Field(default=False, description="Enable verbose output")


# Global configuration instance
_config_instance: Optional[PowerScaleConfig] = None


def setup_config(
    data_dir: Optional[Union[str, Path]] = None,
    env_file: Optional[Union[str, Path]] = None,
    **kwargs
) -> PowerScaleConfig:
    """
    Set up the global configuration.

    Args:
        data_dir: Directory for the stores and saved session
        env_file: Path to .env file
        **kwargs: Additional configuration overrides

    Returns:
        PowerScaleConfig instance
    """
    global _config_instance

    config_kwargs = {}
    if env_file:
        config_kwargs["_env_file"] = str(env_file)

    config_kwargs.update(kwargs)

    config = PowerScaleConfig(**config_kwargs)
    if data_dir:
        config.storage.data_dir = Path(data_dir)

    _config_instance = config
    return _config_instance


def get_config() -> PowerScaleConfig:
    """
    Get the global configuration instance, loading it from the environment
    on first use.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = PowerScaleConfig()
    return _config_instance


def reload_config() -> PowerScaleConfig:
    """Reload configuration from environment and .env files."""
    global _config_instance
    _config_instance = PowerScaleConfig()
    return _config_instance


def get_storage_config() -> StorageConfig:
    return get_config().storage


def get_jikan_config() -> JikanConfig:
    return get_config().jikan


def get_logging_config() -> LoggingConfig:
    return get_config().logging


def get_ranking_config() -> RankingConfig:
    return get_config().ranking


def get_library_config() -> LibraryConfig:
    return get_config().library


__all__ = [
    "StorageConfig",
    "JikanConfig",
    "LoggingConfig",
    "RankingConfig",
    "LibraryConfig",
    "PowerScaleConfig",
    "setup_config",
    "get_config",
    "reload_config",
    "get_storage_config",
    "get_jikan_config",
    "get_logging_config",
    "get_ranking_config",
    "get_library_config",
]
