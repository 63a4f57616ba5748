"""
Exception hierarchy for GitHub contents API operations.

Status codes are mapped to specific exceptions so callers can tell an
expired token apart from a stale sha or a missing file.
"""

from typing import Optional


class GitHubAPIError(RuntimeError):
    """
    Base exception for all GitHub API errors.

    Carries the HTTP status, the client operation and the repository path
    involved so failures can be reported per function.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        response_snippet: Optional[str] = None,
    ) -> None:
        status_fragment = f" (HTTP {status_code})" if status_code is not None else ""
        path_fragment = f" for '{path}'" if path else ""
        operation_fragment = f" during {operation}" if operation else ""
        snippet_fragment = (
            f" - {response_snippet.strip()}"
            if response_snippet and response_snippet.strip()
            else ""
        )
        super().__init__(
            f"{message}{operation_fragment}{path_fragment}{status_fragment}{snippet_fragment}"
        )
        self.status_code = status_code
        self.operation = operation
        self.path = path
        self.response_snippet = response_snippet


class GitHubAuthenticationError(GitHubAPIError):
    """
    Raised when GitHub rejects the token (HTTP 401, or 403 without rate limiting).

    Indicates a missing, expired or under-scoped token; retrying will not help.
    """

    pass


class GitHubRateLimitError(GitHubAPIError):
    """Raised when the primary or secondary rate limit is exhausted."""

    def __init__(self, *args, reset_at: Optional[int] = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.reset_at = reset_at


class GitHubNotFoundError(GitHubAPIError):
    """
    Raised when a repository, branch or path does not exist.

    Note: ``get_file`` and ``scan_tree`` translate 404 into ``None`` / ``[]``,
    so this surfaces mostly from direct ``get_text`` calls.
    """

    pass


class GitHubConflictError(GitHubAPIError):
    """
    Raised when an update is rejected because the sha is stale.

    Someone else changed the file since it was scanned; rescan and retry.
    """

    pass
