"""
Configure logging for the application.

This module provides a consistent logging configuration across the entire
application, ensuring log messages are formatted correctly and directed
to the appropriate outputs (console, file, etc.).

Modules configure their logger at import time, before any ``.env`` file has
been read. Once the environment is loaded, ``apply_logging_config`` re-applies
the final settings to every logger configured so far.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from realtime_console.config.constants import LOGGER_NAME
from realtime_console.config.models import LoggingConfig

# Log levels
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Log file configuration
LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))
LOG_FILENAME = os.getenv("LOG_FILENAME", "realtime_console.log")
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

# Names passed to configure_logging, in first-configured order
_configured_loggers: List[str] = []


def configure_logging(
    name: str = LOGGER_NAME,
    file_path: Optional[str] = None,
    log_filename: Optional[str] = None,
    level: Optional[str] = None,
    config: Optional[LoggingConfig] = None,
) -> logging.Logger:
    """
    Configure a named logger with console and file handlers.

    Explicit arguments win over ``config``, which wins over the module
    defaults. Calling this twice for the same name replaces the handlers
    instead of stacking them.

    Returns:
        logging.Logger: The configured logger instance
    """
    if level is None:
        level = config.level.value if config else LOG_LEVEL
    if file_path is None:
        file_path = str(config.log_dir) if config else str(LOG_DIR)
    if log_filename is None:
        log_filename = config.log_filename if config else LOG_FILENAME
    log_format = config.format if config else LOG_FORMAT
    max_bytes = config.max_log_size if config else MAX_LOG_SIZE
    backup_count = config.backup_count if config else BACKUP_COUNT

    log_dir = Path(file_path)
    log_file = log_dir / log_filename

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as e:
        logger.warning(f"Could not set up file logging: {e}")

    # Prevent log propagation to root logger
    logger.propagate = False

    if name not in _configured_loggers:
        _configured_loggers.append(name)

    logger.debug("Logging configured")
    return logger


def apply_logging_config(config: LoggingConfig) -> None:
    """Re-apply ``config`` to the application logger and every configured logger."""
    names = [LOGGER_NAME] + [name for name in _configured_loggers if name != LOGGER_NAME]
    for name in names:
        configure_logging(name, config=config)
