"""Logging for cantus-firmus windows.

Every window is its own process, so each one logs to its own rotating file,
``cantus-firmus-<window>.log``, and stamps its records with its window name.
Processes without a window name (the CLI, a provider before it was named)
share ``cantus-firmus.log``. The sync and storage loggers record at DEBUG
level in the file by default so a window's synchronization trace can be
read back with ``cantus-firmus logs --window NAME``.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Sequence, TextIO

from cantus_firmus.identity import WINDOW_NAME_ENV

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] <%(window)s> %(name)s: %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_MAX_BYTES = 2 * 1024 * 1024  # 2 MB per window
DEFAULT_BACKUP_COUNT = 2
DEFAULT_DEBUG_MODULES = ("sync", "storage")

PACKAGE_LOGGER = "cantus_firmus"
LOG_FILE_STEM = "cantus-firmus"

LOG_DIR = Path.home() / ".config" / "cantus-firmus" / "logs"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def current_window_name() -> str | None:
    """Window name of this process, as set by the window spawner."""
    return os.environ.get(WINDOW_NAME_ENV) or None


class WindowNameFilter(logging.Filter):
    """Adds the ``window`` attribute used by the log format."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.window = current_window_name() or "-"
        return True


def get_log_file_path(window_name: str | None = None) -> Path:
    """Get the log file of a window, creating the log directory if needed.

    Args:
        window_name: Window whose file to use; defaults to this process's
            window name.
    """
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    name = window_name if window_name is not None else current_window_name()
    if not name:
        return LOG_DIR / f"{LOG_FILE_STEM}.log"
    return LOG_DIR / f"{LOG_FILE_STEM}-{_UNSAFE_CHARS.sub('_', name)}.log"


def setup_logging(
    *,
    level: int | str = DEFAULT_LOG_LEVEL,
    log_to_file: bool = True,
    log_to_console: bool = False,
    console_stream: TextIO = sys.stderr,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    debug_modules: Sequence[str] | None = DEFAULT_DEBUG_MODULES,
) -> None:
    """Configure logging for the whole package.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_to_file: Whether to log to this window's file.
        log_to_console: Whether to log to console (stderr).
        console_stream: Stream for console output.
        max_bytes: Maximum log file size before rotation.
        backup_count: Number of backup log files to keep.
        debug_modules: Modules (e.g. ``"sync"``) whose DEBUG records go to
            the log file regardless of ``level``. Pass an empty sequence to
            turn this off.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), DEFAULT_LOG_LEVEL)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    for handler in package_logger.handlers:
        handler.close()
    package_logger.handlers.clear()

    formatter = logging.Formatter(DEFAULT_LOG_FORMAT, DEFAULT_DATE_FORMAT)
    window_filter = WindowNameFilter()

    if log_to_file:
        file_handler = RotatingFileHandler(
            get_log_file_path(),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG if debug_modules else level)
        file_handler.addFilter(window_filter)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    if log_to_console:
        console_handler = logging.StreamHandler(console_stream)
        console_handler.setLevel(level)
        console_handler.addFilter(window_filter)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

    for module_name in debug_modules or ():
        get_logger(module_name).setLevel(logging.DEBUG)


def enable_debug_mode() -> None:
    """Log everything at DEBUG level to the console and the window's file."""
    setup_logging(level=logging.DEBUG, log_to_console=True)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the cantus_firmus namespace.

    Args:
        name: Logger name (will be prefixed with cantus_firmus.).
    """
    if name == PACKAGE_LOGGER or name.startswith(f"{PACKAGE_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


def log_exception(
    logger: logging.Logger,
    exc: Exception,
    message: str = "An error occurred",
    *,
    level: int = logging.ERROR,
    include_traceback: bool = True,
) -> None:
    """Log an exception with consistent formatting.

    Args:
        logger: Logger to use.
        exc: Exception to log.
        message: Human-readable message prefix.
        level: Log level (default ERROR).
        include_traceback: Whether to include full traceback.
    """
    if include_traceback:
        logger.log(level, "%s: %s", message, exc, exc_info=exc)
    else:
        logger.log(level, "%s: %s (%s)", message, exc, type(exc).__name__)


def list_log_windows() -> list[str]:
    """Names of the windows that have a log file."""
    if not LOG_DIR.exists():
        return []
    prefix = f"{LOG_FILE_STEM}-"
    return sorted(
        path.stem[len(prefix):]
        for path in LOG_DIR.glob(f"{prefix}*.log")
    )


def get_recent_logs(lines: int = 100, window_name: str | None = None) -> list[str]:
    """Get the last lines of a window's log file.

    Args:
        lines: Number of lines to return.
        window_name: Window whose log to read; defaults to this process's.
    """
    log_file = get_log_file_path(window_name)
    if not log_file.exists():
        return []

    with open(log_file, "r", encoding="utf-8") as f:
        return f.readlines()[-lines:]
