"""
Scoped loggers for the package.

Every logger created through `get_logger` prints to stdout and shares one
file handler once `setup_file_logging` has been called.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

CONSOLE_FMT = '[%(name)s] %(levelname)s: %(message)s'
FILE_FMT = '%(asctime)s | %(name)s | %(threadName)s | %(levelname)s | %(message)s'
LOG_FILE_NAME = 'contact_calibration.log'

_KNOWN_LOGGERS: list[logging.Logger] = []
_SHARED_FILE_HANDLER: logging.FileHandler | None = None


def get_logger(name: str) -> logging.Logger:
    """Create or fetch a logger with the package console format."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)  # handlers filter
    logger.propagate = False

    if logger not in _KNOWN_LOGGERS:
        _KNOWN_LOGGERS.append(logger)

    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )
    if not has_console:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter(CONSOLE_FMT))
        logger.addHandler(handler)

    if _SHARED_FILE_HANDLER is not None and _SHARED_FILE_HANDLER not in logger.handlers:
        logger.addHandler(_SHARED_FILE_HANDLER)

    return logger


def set_console_level(level: int) -> None:
    """Change the stdout threshold of every package logger (e.g. DEBUG for -v)."""
    for logger in _KNOWN_LOGGERS:
        for h in logger.handlers:
            if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler):
                h.setLevel(level)


def setup_file_logging(log_dir: Path, file_level: int = logging.DEBUG) -> Path:
    """
    Attach a shared file handler to all package loggers.

    Call once at the start of a command. Returns the log file path.
    """
    global _SHARED_FILE_HANDLER

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    new_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
    new_handler.setLevel(file_level)
    new_handler.setFormatter(logging.Formatter(FILE_FMT))

    old_handler = _SHARED_FILE_HANDLER
    for logger in _KNOWN_LOGGERS:
        if old_handler is not None and old_handler in logger.handlers:
            logger.removeHandler(old_handler)
        logger.addHandler(new_handler)
    if old_handler is not None:
        old_handler.close()

    _SHARED_FILE_HANDLER = new_handler
    return log_file
