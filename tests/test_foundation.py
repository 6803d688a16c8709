"""
Test suite for the foundation components.

Verifies that the centralized logging, exception hierarchy and
configuration systems work correctly.
"""

import logging
import tempfile
import os
from pathlib import Path

import pytest

from power_scale.power_scale import logging as logging_module
from power_scale.power_scale.logging import (
    setup_logging, get_logger, set_log_level, temporary_log_level,
    PowerScaleError, ConfigError, APIError, PersistenceError, ValidationError,
    InvalidStatusError, NotEnoughItemsError, RewatchError,
)
from power_scale.power_scale.config import (
    setup_config, reload_config,
    StorageConfig, LoggingConfig, RankingConfig,
    get_storage_config, get_jikan_config, get_ranking_config, get_library_config,
)


class TestLogging:
    """Test the centralized logging system."""

    def test_setup_logging(self, monkeypatch):
        """Test that logging can be set up and creates its file."""
        fd, log_file = tempfile.mkstemp(suffix='.log')
        os.close(fd)
        monkeypatch.setattr(logging_module, "_logger_instance", None)

        try:
            logger_instance = setup_logging(log_file)
            assert logger_instance is not None
            assert Path(logger_instance.log_file).exists()
        finally:
            logging.shutdown()
            Path(log_file).unlink(missing_ok=True)

    def test_get_logger(self):
        logger = get_logger("test.module")
        assert logger.name == "test.module"
        assert len(logger.handlers) == 0  # Uses root handlers

    def test_log_levels(self):
        """Test that log levels can be changed per handler."""
        get_logger("test")
        set_log_level("DEBUG", "console")
        set_log_level("INFO", "file")
        set_log_level("WARNING", "both")

    def test_temporary_log_level(self):
        """Test that the temporary log level is restored."""
        root_logger = logging.getLogger()
        initial_level = root_logger.level

        with temporary_log_level("DEBUG", "console"):
            pass

        assert root_logger.level == initial_level

    def test_custom_exceptions(self):
        """Test that every error derives from PowerScaleError."""
        for error in (ConfigError, APIError, PersistenceError, ValidationError, RewatchError):
            with pytest.raises(PowerScaleError):
                raise error("boom")

        with pytest.raises(ValidationError):
            raise InvalidStatusError("bad status")

    def test_not_enough_items_message(self):
        error = NotEnoughItemsError(1, "Anime")
        assert error.count == 1
        assert "Anime" in str(error)
        assert isinstance(error, PowerScaleError)


class TestConfiguration:
    """Test the centralized configuration system."""

    def test_default_config(self, monkeypatch):
        monkeypatch.delenv("RANKING_AUTOSAVE", raising=False)
        config = setup_config()
        assert config.ranking.autosave is True
        assert config.library.strict_status is False
        assert config.storage.primary_path.name == config.storage.primary_db_name

    def test_config_with_data_dir(self, tmp_path):
        config = setup_config(data_dir=tmp_path)
        assert config.storage.data_dir == tmp_path
        assert get_storage_config().backup_path == tmp_path / config.storage.backup_file_name
        assert get_storage_config().session_path.parent == tmp_path

    def test_config_from_env_vars(self, monkeypatch):
        monkeypatch.setenv("STORAGE_PRIMARY_DB_NAME", "other.db")
        monkeypatch.setenv("JIKAN_RATE_LIMIT_DELAY", "0")
        monkeypatch.setenv("RANKING_SEED", "42")
        monkeypatch.setenv("RANKING_AUTOSAVE", "false")
        monkeypatch.setenv("LIBRARY_STRICT_STATUS", "true")

        reload_config()

        assert get_storage_config().primary_db_name == "other.db"
        assert get_jikan_config().rate_limit_delay == 0
        assert get_ranking_config().seed == 42
        assert get_ranking_config().autosave is False
        assert get_library_config().strict_status is True

    def test_config_validation(self):
        with pytest.raises(ValueError):
            LoggingConfig(file_level="INVALID_LEVEL")

        for level in ["debug", "INFO", "Warning"]:
            assert LoggingConfig(console_level=level).console_level == level.upper()

    def test_sub_configs(self):
        assert isinstance(StorageConfig().data_dir, Path)
        assert RankingConfig(seed=3).seed == 3
