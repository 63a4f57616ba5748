"""Configuration loading (settings file, environment, GitHub token)."""

from .settings import (
    CONFIG_SCHEMA,
    ConfigurationError,
    SecretRedactionFilter,
    Settings,
    clear_token_cache,
    setup_logging_redaction,
)

__all__ = [
    "CONFIG_SCHEMA",
    "ConfigurationError",
    "SecretRedactionFilter",
    "Settings",
    "clear_token_cache",
    "setup_logging_redaction",
]
