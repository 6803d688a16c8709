"""
Centralized logging and error handling for PowerScale.

This module provides consistent logging configuration and the exception
hierarchy shared by the library, persistence and ranking layers.
"""

import logging
from contextlib import contextmanager
from typing import Optional, Union
from rich.logging import RichHandler
from rich.console import Console
from rich.panel import Panel

from .constants import LOG_FILENAME

# Global console instance for the entire application
console = Console()


class PowerScaleError(Exception):
    """Base exception for all PowerScale-specific errors."""
    pass


class ConfigError(PowerScaleError):
    """Raised when there's a configuration-related error."""
    pass


class APIError(PowerScaleError):
    """Raised when the metadata API cannot be reached or returns garbage."""
    pass


class PersistenceError(PowerScaleError):
    """Raised by a record store when a read or write against its backend fails."""
    pass


class ValidationError(PowerScaleError):
    """Raised when data validation fails."""
    pass


class InvalidStatusError(ValidationError):
    """Raised when an item cannot be filed under the given status."""
    pass


class NotEnoughItemsError(PowerScaleError):
    """Raised when a tournament is requested over fewer than two items."""

    def __init__(self, count: int, category: str = ""):
        self.count = count
        self.category = category
        where = f" in {category}" if category else ""
        super().__init__(f"Not enough items to rank{where}: need at least 2, have {count}")


class RewatchError(PowerScaleError):
    """Raised when a rewatch transition is requested from an invalid state."""
    pass


class PowerScaleLogger:
    """
    Centralized logging configuration for PowerScale.

    Owns the root logger handlers: full detail goes to the log file,
    warnings and errors go to the rich console.
    """

    def __init__(self, log_file: str = LOG_FILENAME):
        self.log_file = log_file
        self.console = console
        self._setup_root_logger()

    def _setup_root_logger(self) -> None:
        """Configure the root logger with file and console handlers."""
        file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        # File handler (full detail) - UTF-8 so titles in any script survive
        file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(file_formatter)

        console_handler = RichHandler(
            console=self.console,
            show_path=False,
            show_time=True,
            show_level=True,
            markup=True,
            keywords=[]
        )
        console_handler.setLevel(logging.WARNING)

        root_logger = logging.getLogger()
        root_logger.setLevel(logging.INFO)

        # Clear existing handlers to avoid duplicates
        root_logger.handlers = []
        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)

    def get_logger(self, name: str) -> logging.Logger:
        return logging.getLogger(name)

    def set_console_level(self, level: Union[str, int], clean: bool = False) -> None:
        """
        Set the console logging level.

        Args:
            level: Logging level (e.g., 'DEBUG', 'INFO', 'WARNING')
            clean: If True, hides time and level for a cleaner UI-like look
        """
        root_logger = logging.getLogger()

        numeric_level = level
        if isinstance(level, str):
            numeric_level = getattr(logging, level.upper(), logging.INFO)

        # Ensure root logger allows this level
        if numeric_level < root_logger.level:
            root_logger.setLevel(numeric_level)

        for handler in root_logger.handlers:
            if isinstance(handler, RichHandler):
                handler.setLevel(numeric_level)
                handler.show_time = not clean
                handler.show_level = not clean
                break

    def set_file_level(self, level: Union[str, int]) -> None:
        """
        Set the file logging level.

        Args:
            level: Logging level (e.g., 'DEBUG', 'INFO', 'WARNING')
        """
        root_logger = logging.getLogger()

        numeric_level = level
        if isinstance(level, str):
            numeric_level = getattr(logging, level.upper(), logging.INFO)

        if numeric_level < root_logger.level:
            root_logger.setLevel(numeric_level)

        for handler in root_logger.handlers:
            if isinstance(handler, logging.FileHandler):
                handler.setLevel(numeric_level)
                break


# Global logger instance
_logger_instance: Optional[PowerScaleLogger] = None


def setup_logging(log_file: str = LOG_FILENAME) -> PowerScaleLogger:
    """
    Set up the global logging configuration.

    Args:
        log_file: Path to the log file

    Returns:
        The configured PowerScaleLogger instance
    """
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = PowerScaleLogger(log_file)
    return _logger_instance


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    This should be called in each module as:
        from power_scale.power_scale.logging import get_logger
        logger = get_logger(__name__)
    """
    if _logger_instance is None:
        setup_logging()
    return logging.getLogger(name)


def set_log_level(level: Union[str, int], handler_type: str = "both", clean: bool = False) -> None:
    """
    Set the logging level for console, file, or both handlers.

    Args:
        level: Logging level (e.g., 'DEBUG', 'INFO', 'WARNING', 'ERROR')
        handler_type: 'console', 'file', or 'both'
        clean: If True, hides time and level for console handler
    """
    if _logger_instance is None:
        setup_logging()

    if handler_type in ("console", "both"):
        _logger_instance.set_console_level(level, clean=clean)
    if handler_type in ("file", "both"):
        _logger_instance.set_file_level(level)


@contextmanager
def temporary_log_level(level: Union[str, int], handler_type: str = "console"):
    """
    Temporarily change the log level.

    Usage:
        with temporary_log_level("DEBUG"):
            ...
    """
    if _logger_instance is None:
        setup_logging()

    root_logger = logging.getLogger()
    target = None
    for handler in root_logger.handlers:
        if handler_type == "console" and isinstance(handler, RichHandler):
            target = handler
            break
        elif handler_type == "file" and isinstance(handler, logging.FileHandler):
            target = handler
            break

    previous = target.level if target is not None else None
    if target is not None:
        target.setLevel(level)
    try:
        yield
    finally:
        if target is not None:
            target.setLevel(previous)


def log_step(message: str) -> None:
    """
    Log a major step with a visual panel.
    Logs to file as INFO, prints to console as Panel if level <= INFO.
    """
    if _logger_instance is None:
        setup_logging()

    logging.getLogger("power_scale.step").info(f"STEP: {message}")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if isinstance(handler, RichHandler):
            if handler.level <= logging.INFO:
                _logger_instance.console.print(Panel(message, style="bold magenta"))
            break


__all__ = [
    "console",
    "PowerScaleError",
    "ConfigError",
    "APIError",
    "PersistenceError",
    "ValidationError",
    "InvalidStatusError",
    "NotEnoughItemsError",
    "RewatchError",
    "PowerScaleLogger",
    "setup_logging",
    "get_logger",
    "set_log_level",
    "temporary_log_level",
    "log_step",
]
