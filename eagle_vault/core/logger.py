"""
Logging system for the Eagle vault engine.

Module loggers write colored lines to stdout and, when a log file is
configured, plain lines to a rotating file.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_LEVEL_ENV = "LOG_LEVEL"
LOG_FILE_ENV = "EAGLE_VAULT_LOG_FILE"

_RESET = "\033[0m"
_LEVEL_COLORS = {
    logging.DEBUG: "\033[90m",
    logging.INFO: "\033[92m",
    logging.WARNING: "\033[93m",
    logging.ERROR: "\033[91m",
    logging.CRITICAL: "\033[91m\033[1m",
}


class ColoredFormatter(logging.Formatter):
    """Wraps each formatted line in the ANSI color of its level."""

    def format(self, record: logging.LogRecord) -> str:
        color = _LEVEL_COLORS.get(record.levelno, _RESET)
        return f"{color}{super().format(record)}{_RESET}"


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


def _file_handler(path: Path, level: int) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    return handler


def setup_logger(
    name: str,
    level: int | str | None = None,
    log_file: str | Path | None = None,
) -> logging.Logger:
    """
    Configure and return the logger called ``name``.

    A logger that already has handlers is returned untouched.

    Args:
        name: Logger name, usually the module's ``__name__``
        level: Level name or number (default: $LOG_LEVEL, else INFO)
        log_file: Rotating log file (default: $EAGLE_VAULT_LOG_FILE, else none)

    Example:
        >>> logger = setup_logger("eagle_vault.vault.core.reporting")
        >>> logger.info("Report processed")
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    resolved = _resolve_level(level)
    logger.setLevel(resolved)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(resolved)
    console.setFormatter(ColoredFormatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(console)

    log_file = log_file or os.getenv(LOG_FILE_ENV)
    if log_file:
        logger.addHandler(_file_handler(Path(log_file), resolved))

    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return the logger called ``name``, configuring it on first use."""
    logger = logging.getLogger(name)
    return logger if logger.handlers else setup_logger(name)
