"""Logging helpers for the purchase watcher."""

# Module responsibilities:
# - Configure the package logger once with console + optional rotating file handlers.
# - Modules log through logging.getLogger(__name__) under the package namespace.

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from typing import Optional, Union

ROOT_LOGGER_NAME = "purchase_watcher"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LOG_CONFIGURED = False


def configure_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """Attach handlers to the package logger; later calls only adjust the level."""
    global _LOG_CONFIGURED

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    if isinstance(level, str):
        level = level.upper()
    root_logger.setLevel(level)
    if _LOG_CONFIGURED:
        return root_logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=2_000_000, backupCount=3, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.propagate = False
    _LOG_CONFIGURED = True
    return root_logger


__all__ = ["configure_logging"]
