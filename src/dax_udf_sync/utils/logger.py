"""
Structured logging utility for dax-udf-sync.

Provides JSON-formatted logging with token masking, context injection,
and operation timing so sync runs can be inspected from CI logs.
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from functools import wraps

_LOG_LEVEL = logging.WARNING
_LOGGERS: Dict[str, "StructuredLogger"] = {}
_FILTERS: List[logging.Filter] = []


def mask_token(token: Optional[str]) -> str:
    """
    Mask an access token so only its prefix and last four characters remain.

    Args:
        token: GitHub token (classic ``ghp_...`` or fine-grained ``github_pat_...``)

    Returns:
        Masked token string

    Example:
        >>> mask_token("ghp_abcdefghijklmnop1234")
        "ghp_****1234"
    """
    if not token:
        return "unset"

    if len(token) < 8:
        return "****"

    prefix = ""
    for candidate in ("github_pat_", "ghp_", "gho_", "ghs_", "ghu_"):
        if token.startswith(candidate):
            prefix = candidate
            break

    return f"{prefix}****{token[-4:]}"


class StructuredLogger:
    """
    JSON-formatted logger with context injection and operation timing.

    All log output is a single JSON object per line, written to stderr so it
    never mixes with command output on stdout.
    """

    def __init__(self, name: str):
        """
        Initialize structured logger.

        Args:
            name: Logger name (typically __name__ from calling module)
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(_LOG_LEVEL)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(logging.DEBUG)
            formatter = logging.Formatter("%(message)s", datefmt="%Y-%m-%dT%H:%M:%S")
            handler.setFormatter(formatter)
            for log_filter in _FILTERS:
                handler.addFilter(log_filter)
            self.logger.addHandler(handler)

    def _format_log(
        self,
        level: str,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None,
    ) -> str:
        """
        Format log entry as JSON.

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR)
            message: Human-readable message
            operation: Operation name (e.g., "scan_tree", "put_text")
            context: Context dict with path, function name, etc.
            duration_ms: Operation duration in milliseconds
            error: Error message if applicable

        Returns:
            JSON-formatted log string
        """
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "message": message,
        }

        if operation:
            log_entry["operation"] = operation

        if context:
            log_entry["context"] = context

        if duration_ms is not None:
            log_entry["duration_ms"] = round(duration_ms, 2)

        if error:
            log_entry["error"] = error

        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def debug(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Log debug message."""
        if not self.logger.isEnabledFor(logging.DEBUG):
            return
        self.logger.debug(self._format_log("DEBUG", message, operation, context))

    def info(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
    ):
        """Log info message."""
        log_json = self._format_log("INFO", message, operation, context, duration_ms)
        self.logger.info(log_json)

    def warning(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        """Log warning message."""
        log_json = self._format_log("WARNING", message, operation, context, error=error)
        self.logger.warning(log_json)

    def error(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ):
        """Log error message."""
        log_json = self._format_log(
            "ERROR", message, operation, context, duration_ms, error
        )
        self.logger.error(log_json)


def log_operation(operation_name: str):
    """
    Decorator to automatically log operation start, duration, and completion.

    Usage:
        @log_operation("scan_tree")
        def scan_tree(self, path):
            ...
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(func.__module__)

            context: Dict[str, Any] = {
                "function": func.__name__,
            }
            if "path" in kwargs:
                context["path"] = kwargs["path"]
            if kwargs.get("names"):
                context["names"] = list(kwargs["names"])

            logger.debug(
                f"Starting {operation_name}", operation=operation_name, context=context
            )

            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration_ms = (time.time() - start_time) * 1000
                logger.info(
                    f"Completed {operation_name}",
                    operation=operation_name,
                    context=context,
                    duration_ms=duration_ms,
                )
                return result
            except Exception as e:
                duration_ms = (time.time() - start_time) * 1000
                logger.error(
                    f"Failed {operation_name}",
                    operation=operation_name,
                    context=context,
                    error=str(e),
                    duration_ms=duration_ms,
                )
                raise

        return wrapper

    return decorator


def set_log_level(level: int) -> None:
    """
    Set the level for every structured logger, including ones created later.

    Args:
        level: A ``logging`` level constant
    """
    global _LOG_LEVEL
    _LOG_LEVEL = level
    for structured in _LOGGERS.values():
        structured.logger.setLevel(level)


def get_logger(name: str) -> StructuredLogger:
    """
    Factory function to get a structured logger instance.

    Args:
        name: Logger name (typically __name__ from calling module)

    Returns:
        StructuredLogger instance (cached per name)
    """
    if name not in _LOGGERS:
        _LOGGERS[name] = StructuredLogger(name)
    return _LOGGERS[name]


def install_filter(log_filter: logging.Filter) -> None:
    """
    Attach a filter (e.g. secret redaction) to every structured logger handler.

    Loggers created afterwards pick the filter up as well.

    Args:
        log_filter: Filter instance to attach
    """
    _FILTERS.append(log_filter)
    for structured in _LOGGERS.values():
        for handler in structured.logger.handlers:
            handler.addFilter(log_filter)
