"""Logging setup for the UMS service.

Everything logs through the ``ums`` logger tree (``logging.getLogger(__name__)``
in each module). ``configure_logging`` attaches handlers once at startup:
a console stream and, when enabled, a size-rotated file per logger name.
"""

import logging
import logging.handlers
import os
from typing import List, Optional

from ums.core.config import Settings

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
ISO_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Third-party loggers that are noisy at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "celery.app.trace", "urllib3")


def _level(value: str) -> int:
    name = value.upper()
    if name not in LEVELS:
        raise ValueError(f"Invalid log level: {value}. Must be one of: {', '.join(LEVELS)}")
    return getattr(logging, name)


def _build_handlers(
    name: str,
    log_dir: str,
    file_logging: bool,
    console_logging: bool,
    max_bytes: int,
    backup_count: int,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if console_logging:
        handlers.append(logging.StreamHandler())
    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                os.path.join(log_dir, f"{name}.log"),
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
        )
    return handlers


def setup_logger(
    name: str,
    log_dir: str = "./logs",
    level: str = "INFO",
    log_format: Optional[str] = None,
    file_logging: bool = True,
    console_logging: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """Return the named logger with its level set and handlers attached.

    Handlers are attached only on the first call for a given name, so
    repeated calls (app reloads, worker forks) just update the level.

    Raises:
        ValueError: if ``level`` is not a standard level name
    """
    logger = logging.getLogger(name)
    logger.setLevel(_level(level))
    if logger.handlers:
        return logger

    formatter = logging.Formatter(log_format or DEFAULT_FORMAT, datefmt=ISO_DATE_FORMAT)
    for handler in _build_handlers(
        name, log_dir, file_logging, console_logging, max_bytes, backup_count
    ):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def configure_logging(settings: Settings) -> logging.Logger:
    """Configure the ``ums`` logger tree from application settings."""
    if not settings.debug:
        for noisy in QUIET_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)

    return setup_logger(
        "ums",
        log_dir=settings.log_dir,
        level=settings.log_level,
        file_logging=settings.log_to_file,
    )
