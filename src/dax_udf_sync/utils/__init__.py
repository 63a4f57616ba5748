"""Shared utilities (structured logging)."""

from .logger import (
    StructuredLogger,
    get_logger,
    install_filter,
    log_operation,
    mask_token,
    set_log_level,
)

__all__ = [
    "StructuredLogger",
    "get_logger",
    "install_filter",
    "log_operation",
    "mask_token",
    "set_log_level",
]
