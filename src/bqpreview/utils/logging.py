"""Logging setup for the bqpreview package and CLI."""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import TextIO

__all__ = ["setup_logging", "shutdown_logging", "get_logger", "get_log_path", "PACKAGE_LOGGER"]

PACKAGE_LOGGER = "bqpreview"
_DEFAULT_LOG_DIR = Path.home() / ".bqpreview" / "logs"
_LOG_FILE_NAME = "bqpreview.log"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore")
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_installed: list[logging.Handler] = []
_log_path: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    console_stream: TextIO | None = None,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Attach a rotating file handler (and a stderr handler) to the package logger.

    Only the ``bqpreview`` logger is configured so an embedding host keeps
    control of the root logger. Records still propagate to it. Console
    output goes to stderr; stdout is reserved for status lines and JSON.

    Calling again is a no-op unless ``force`` is set, in which case the
    previously installed handlers are closed and replaced.
    """

    global _log_path
    if _installed and not force and _log_path is not None:
        return _log_path
    shutdown_logging()

    target_dir = _resolve_log_dir(log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / _LOG_FILE_NAME
    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    _installed.append(file_handler)

    if console:
        console_handler = logging.StreamHandler(console_stream or sys.stderr)
        console_handler.setFormatter(formatter)
        _installed.append(console_handler)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    for handler in _installed:
        handler.setLevel(level)
        package_logger.addHandler(handler)
    logging.captureWarnings(True)
    _quiet_external_loggers(level)

    _log_path = log_path
    package_logger.debug("Logging to %s", log_path)
    return log_path


def shutdown_logging() -> None:
    """Detach and close the handlers installed by :func:`setup_logging`."""

    global _log_path
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    while _installed:
        handler = _installed.pop()
        package_logger.removeHandler(handler)
        handler.close()
    _log_path = None


def get_logger(name: str) -> logging.Logger:
    """Return ``name`` as a child of the package logger."""

    if name == PACKAGE_LOGGER or name.startswith(f"{PACKAGE_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


def get_log_path() -> Path | None:
    return _log_path


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    env_override = os.environ.get("BQPREVIEW_LOG_DIR")
    return Path(log_dir or env_override or _DEFAULT_LOG_DIR).expanduser()


def _quiet_external_loggers(level: int) -> None:
    # httpx logs every request at INFO
    quiet_level = max(level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
