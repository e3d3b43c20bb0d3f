"""Logging configuration for tokengen."""

import logging
import sys
from pathlib import Path
from typing import Optional

from .exceptions import ConfigError


def verbosity_to_level(verbosity: int, default: str = "WARNING") -> str:
    """Map the number of -v flags to a logging level name."""
    if verbosity >= 2:
        return "DEBUG"
    if verbosity == 1:
        return "INFO"
    return default


def setup_logging(
    level: str = "WARNING",
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure application logging.

    Console output goes to stderr, stdout is reserved for the token.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path

    Returns:
        Configured logger instance

    Raises:
        ConfigError: If the level name is unknown
    """
    console_level = logging.getLevelName(level.strip().upper())
    if not isinstance(console_level, int):
        raise ConfigError(f"Unknown log level '{level}'")

    logger = logging.getLogger("tokengen")
    logger.setLevel(logging.DEBUG if log_file else console_level)
    logger.propagate = False

    # Remove existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger
