#!/usr/bin/env python3
"""Utility modules for journal-mirror."""

from .logging import get_host_logger, init_logger, logger

__all__ = [
    "get_host_logger",
    "init_logger",
    "logger",
]
