"""Logging infrastructure for daycycle.

This module provides structured logging with JSON output, context tracking,
and OpenTelemetry trace correlation.
"""

from daycycle.logging.filters import (
    ContextFilter,
    clear_request_context,
    set_logging_context,
    set_operation_context,
    set_request_context,
)
from daycycle.logging.logger import CustomJsonFormatter, get_logger, setup_logging

__all__ = [
    "get_logger",
    "setup_logging",
    "CustomJsonFormatter",
    "ContextFilter",
    "set_logging_context",
    "set_request_context",
    "set_operation_context",
    "clear_request_context",
]
