"""Structured logging module.

This module provides utilities for structured logging using structlog and logfire.
"""

from .base import get_logger
from .context import clear_log_context, get_log_context, set_log_context, update_log_context
from .setup import setup_logging

__all__ = [
    "clear_log_context",
    "get_log_context",
    "get_logger",
    "set_log_context",
    "setup_logging",
    "update_log_context",
]
