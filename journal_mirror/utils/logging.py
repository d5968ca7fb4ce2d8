#!/usr/bin/env python3
"""Centralized logging configuration for journal-mirror.

This module provides a configured logger instance using loguru,
which should be imported and used throughout the application.
"""

import os
import sys
from pathlib import Path

from loguru import logger as _base_logger

# Remove default logger
_base_logger.remove()

_CONSOLE_FORMAT = "[{time:HH:mm:ss}|<level>{level: <8}</level>|{name}:{line}] {message}"
_FILE_FORMAT = "[{time:YYYY-MM-DD HH:mm:ss}|{level}|{name}:{function}:{line}] {message}"

_handler_ids: list[int] = []


def init_logger(
    level: str | None = None,
    log_file: Path | None = None,
    file_level: str | None = None,
    retention: str = "30 days",
    colorize: bool = True,
) -> "logger":
    """Initialize and configure the logger.

    Calling this again replaces the sinks installed by the previous call.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR). Defaults to env var or INFO.
        log_file: Optional file path for log output
        file_level: File log level. Defaults to same as console level.
        retention: How long to keep rotated log files
        colorize: Whether to colorize console output

    Returns:
        Configured logger instance
    """
    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO")

    if file_level is None:
        file_level = os.environ.get("FILE_LOG_LEVEL", level)

    while _handler_ids:
        _base_logger.remove(_handler_ids.pop())

    _handler_ids.append(
        _base_logger.add(
            sys.stderr,
            level=level,
            format=_CONSOLE_FORMAT,
            colorize=colorize,
            backtrace=True,
            diagnose=False,  # Don't show variables in production
        )
    )

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        _handler_ids.append(
            _base_logger.add(
                log_file,
                level=file_level,
                format=_FILE_FORMAT,
                rotation="50 MB",
                retention=retention,
                encoding="utf8",
                backtrace=True,
                diagnose=False,
                enqueue=True,  # Thread-safe: attempts log from worker threads
            )
        )

    return _base_logger


logger = init_logger()


def get_host_logger(host) -> "logger":
    """Get a logger bound to a monitored host.

    Args:
        host: Host identity; its string form is attached as ``extra["host"]``

    Returns:
        Logger instance carrying the host context
    """
    return logger.bind(host=str(host))


__all__ = ["get_host_logger", "init_logger", "logger"]
