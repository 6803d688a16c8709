"""
Configuration package for PowerScale.

This package provides centralized, type-safe configuration management.
"""

from .manager import (
    StorageConfig,
    JikanConfig,
    LoggingConfig,
    RankingConfig,
    LibraryConfig,
    PowerScaleConfig,
    setup_config,
    get_config,
    reload_config,
    get_storage_config,
    get_jikan_config,
    get_logging_config,
    get_ranking_config,
    get_library_config,
)

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
