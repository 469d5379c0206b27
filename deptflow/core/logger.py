"""Logging setup for deptflow.

Every component logs under the ``deptflow`` namespace through ``get_logger``.
``setup_logger`` attaches the handlers once per process, from the
DEPTFLOW_LOG_* settings.
"""

import logging
import logging.handlers
import os
from typing import Optional

from deptflow.core.config import Settings, get_settings


ROOT_LOGGER = "deptflow"
LOG_FILE = "deptflow.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5


def setup_logger(settings: Optional[Settings] = None) -> logging.Logger:
    """Configure the ``deptflow`` logger.

    Logs to the console, and to a rotating ``deptflow.log`` under
    ``settings.log_dir`` when ``settings.log_to_file`` is set. Calling it
    again only updates the level.

    Raises:
        ValueError: If ``settings.log_level`` is not a logging level name
    """
    settings = settings or get_settings()
    logger = logging.getLogger(ROOT_LOGGER)

    level = settings.log_level.upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ValueError(
            f"Invalid log level: {settings.log_level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    logger.setLevel(getattr(logging, level))

    # Prevent duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if settings.log_to_file:
        os.makedirs(settings.log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(settings.log_dir, LOG_FILE),
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUP_COUNT,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the deptflow namespace, e.g. ``get_logger("workflow")``."""
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
