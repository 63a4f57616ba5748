"""GitHub module - contents API client and error hierarchy."""

from .client import GitHubContentsClient, build_session
from .exceptions import (
    GitHubAPIError,
    GitHubAuthenticationError,
    GitHubConflictError,
    GitHubNotFoundError,
    GitHubRateLimitError,
)

__all__ = [
    "GitHubContentsClient",
    "build_session",
    "GitHubAPIError",
    "GitHubAuthenticationError",
    "GitHubConflictError",
    "GitHubNotFoundError",
    "GitHubRateLimitError",
]
