"""Logging configuration for vidshrink.

Provides configure_logging() to set up logging based on LoggingConfig.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

from vidshrink.logging.context import JobContextFilter
from vidshrink.logging.handlers import JSONFormatter

if TYPE_CHECKING:
    from vidshrink.config.models import LoggingConfig

# CRITICAL is not exposed via configuration.
_LEVEL_MAP: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

TEXT_FORMAT = "%(asctime)s - %(job_tag)s%(name)s - %(levelname)s - %(message)s"
TEXT_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"


def _build_formatter(config: LoggingConfig) -> logging.Formatter:
    if config.format.casefold() == "json":
        return JSONFormatter()
    # job_tag is "[J<id>] " inside a transcode, empty string otherwise
    return logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT)


def _open_file_handler(config: LoggingConfig) -> logging.Handler | None:
    """Open the rotating log file, or return None if it is unavailable."""
    if not config.file:
        return None
    try:
        file_path = Path(config.file).expanduser()
        file_path.parent.mkdir(parents=True, exist_ok=True)
        return RotatingFileHandler(
            file_path,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
    except OSError as e:
        sys.stderr.write(f"Warning: Could not open log file {config.file}: {e}\n")
        return None


def configure_logging(config: LoggingConfig) -> None:
    """Configure the root logger from ``config``.

    Replaces any existing root handlers. Logs go to the configured file,
    to stderr when ``include_stderr`` is set, and to stderr as a fallback
    when the file cannot be opened.
    """
    level = _LEVEL_MAP.get(config.level.casefold(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handlers: list[logging.Handler] = []
    file_handler = _open_file_handler(config)
    if file_handler is not None:
        handlers.append(file_handler)
    if config.include_stderr or file_handler is None:
        handlers.append(logging.StreamHandler(sys.stderr))

    formatter = _build_formatter(config)
    context_filter = JobContextFilter()
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root_logger.addHandler(handler)
