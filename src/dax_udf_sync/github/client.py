"""
GitHub Contents API Client

Reads and writes DAX function files in a GitHub repository through the
REST "contents" endpoints. Handles recursive tree scanning, base64 content
encoding, sha-keyed create/update calls and retry with exponential backoff.

Reference: https://docs.github.com/en/rest/repos/contents
"""

import base64
import posixpath
import time
from typing import Any, Dict, Iterable, List, Optional, TYPE_CHECKING, Union
from urllib.parse import quote

import requests

from dax_udf_sync.domain.function import RemoteFile
from dax_udf_sync.github.exceptions import (
    GitHubAPIError,
    GitHubAuthenticationError,
    GitHubConflictError,
    GitHubNotFoundError,
    GitHubRateLimitError,
)
from dax_udf_sync.text.normalize import normalize_text
from dax_udf_sync.utils.logger import get_logger, log_operation

if TYPE_CHECKING:
    from dax_udf_sync.config.settings import Settings

logger = get_logger(__name__)

API_VERSION = "2022-11-28"
USER_AGENT = "dax-udf-sync"


def build_session(token: str) -> requests.Session:
    """
    Create a requests.Session carrying GitHub authentication headers.

    Args:
        token: Personal access token or GitHub App installation token

    Returns:
        Configured requests.Session
    """
    session = requests.Session()
    session.headers.update(
        {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": USER_AGENT,
        }
    )
    return session


class GitHubContentsClient:
    """
    Client for the GitHub repository contents API.

    Requires a requests.Session with an Authorization header (see
    ``build_session``); every call is pinned to one repository and branch.
    """

    DEFAULT_API_URL = "https://api.github.com"
    RETRYABLE_STATUS = (500, 502, 503, 504)

    def __init__(
        self,
        session: requests.Session,
        repo: str,
        branch: str = "main",
        api_url: str = DEFAULT_API_URL,
        extensions: Optional[Iterable[str]] = None,
        timeout: float = 30,
        max_retries: int = 3,
        backoff_base: float = 1.0,
    ):
        """
        Initialize GitHub contents client.

        Args:
            session: Authenticated requests.Session
            repo: Repository in ``owner/name`` form
            branch: Branch to read from and commit to
            api_url: API root (GitHub Enterprise uses ``https://host/api/v3``)
            extensions: File extensions collected by ``scan_tree`` (default: ['.dax'])
            timeout: Per-request timeout in seconds
            max_retries: Attempts for transient failures (5xx, connection errors)
            backoff_base: Base wait in seconds for exponential backoff
        """
        self.session = session
        self.repo = repo.strip("/")
        self.branch = branch
        self.api_url = api_url.rstrip("/")
        self.extensions = tuple(ext.lower() for ext in (extensions or [".dax"]))
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base

    @classmethod
    def from_settings(
        cls, settings: "Settings", session: Optional[requests.Session] = None
    ) -> "GitHubContentsClient":
        """Build a client (and its session, unless given) from resolved settings."""
        if session is None:
            session = build_session(settings.load_github_token())
        return cls(
            session=session,
            repo=settings.repo,
            branch=settings.branch,
            api_url=settings.api_url,
            extensions=settings.extensions,
            timeout=settings.timeout,
            max_retries=settings.max_retries,
            backoff_base=settings.backoff_base,
        )

    # ------------------------------------------------------------------
    # Low-level request handling
    # ------------------------------------------------------------------

    def _contents_url(self, path: str) -> str:
        segments = [quote(segment, safe="") for segment in path.strip("/").split("/") if segment]
        return f"{self.api_url}/repos/{self.repo}/contents/{'/'.join(segments)}"

    def _request(
        self,
        method: str,
        url: str,
        operation: str,
        path: Optional[str] = None,
        **kwargs: Any,
    ) -> requests.Response:
        """
        Issue a request, retrying transient failures with exponential backoff.

        Raises:
            GitHubAPIError: Or one of its subclasses, mapped from the response
        """
        last_error: Optional[str] = None

        for attempt in range(self.max_retries):
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = str(e)
                if attempt < self.max_retries - 1:
                    wait_time = self.backoff_base * (2**attempt)
                    logger.warning(
                        f"Network error talking to GitHub. Retrying in {wait_time}s "
                        f"(attempt {attempt + 1}/{self.max_retries})",
                        operation=operation,
                        context={"path": path},
                        error=last_error,
                    )
                    time.sleep(wait_time)
                    continue
                raise GitHubAPIError(
                    f"GitHub unreachable after {self.max_retries} attempts: {last_error}",
                    operation=operation,
                    path=path,
                ) from e

            if response.status_code in self.RETRYABLE_STATUS:
                last_error = f"HTTP {response.status_code}"
                if attempt < self.max_retries - 1:
                    wait_time = self.backoff_base * (2**attempt)
                    logger.warning(
                        f"Transient GitHub error {response.status_code}. Retrying in {wait_time}s "
                        f"(attempt {attempt + 1}/{self.max_retries})",
                        operation=operation,
                        context={"path": path},
                    )
                    time.sleep(wait_time)
                    continue

            if response.status_code >= 400:
                raise self._error_for(response, operation, path)

            return response

        raise GitHubAPIError(
            f"GitHub request failed after {self.max_retries} attempts ({last_error})",
            operation=operation,
            path=path,
        )

    def _error_for(
        self, response: requests.Response, operation: str, path: Optional[str]
    ) -> GitHubAPIError:
        """Map an error response to the matching exception."""
        status = response.status_code
        headers = response.headers or {}
        snippet = (response.text or "")[:200]

        rate_limited = headers.get("X-RateLimit-Remaining") == "0" or "Retry-After" in headers
        if status == 429 or (status == 403 and rate_limited):
            reset = headers.get("X-RateLimit-Reset")
            logger.error(
                "GitHub rate limit exceeded",
                operation=operation,
                context={"path": path, "reset_at": reset},
            )
            return GitHubRateLimitError(
                "GitHub rate limit exceeded",
                status_code=status,
                operation=operation,
                path=path,
                response_snippet=snippet,
                reset_at=int(reset) if reset and reset.isdigit() else None,
            )

        if status in (401, 403):
            logger.error(
                "Authentication rejected by GitHub",
                operation=operation,
                context={"path": path, "status": status},
            )
            return GitHubAuthenticationError(
                "GitHub rejected the access token",
                status_code=status,
                operation=operation,
                path=path,
                response_snippet=snippet,
            )

        if status == 404:
            return GitHubNotFoundError(
                "Not found",
                status_code=status,
                operation=operation,
                path=path,
                response_snippet=snippet,
            )

        if status == 409 or (status == 422 and snippet and "sha" in snippet.lower()):
            return GitHubConflictError(
                "File changed on GitHub since it was scanned",
                status_code=status,
                operation=operation,
                path=path,
                response_snippet=snippet,
            )

        return GitHubAPIError(
            "GitHub request failed",
            status_code=status,
            operation=operation,
            path=path,
            response_snippet=snippet,
        )

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def list_directory(self, path: str = "") -> List[Dict[str, Any]]:
        """
        List one directory of the repository.

        Args:
            path: Repository path ('' for the repository root)

        Returns:
            Contents API entries; a file path yields a single-entry list
        """
        response = self._request(
            "GET",
            self._contents_url(path),
            operation="list_directory",
            path=path,
            params={"ref": self.branch},
        )
        data = response.json()
        if isinstance(data, dict):
            return [data]
        return data if isinstance(data, list) else []

    def _is_function_file(self, name: str) -> bool:
        return posixpath.splitext(name)[1].lower() in self.extensions

    def _scan(self, path: str, found: List[RemoteFile]) -> None:
        for entry in self.list_directory(path):
            entry_type = entry.get("type")
            if entry_type == "dir":
                self._scan(entry["path"], found)
            elif entry_type == "file" and self._is_function_file(entry.get("name", "")):
                found.append(RemoteFile.from_api(entry))
            else:
                logger.debug(
                    "Skipping repository entry",
                    operation="scan_tree",
                    context={"path": entry.get("path"), "type": entry_type},
                )

    @log_operation("scan_tree")
    def scan_tree(self, path: str = "") -> List[RemoteFile]:
        """
        Recursively collect function files below ``path``.

        Directories are descended into; files with a configured extension
        become ``RemoteFile`` descriptors. Symlinks and submodules are skipped.

        Args:
            path: Repository folder holding the function files

        Returns:
            RemoteFile list sorted by path (empty when ``path`` does not exist)
        """
        found: List[RemoteFile] = []
        try:
            self._scan(path, found)
        except GitHubNotFoundError:
            logger.warning(
                "Functions folder not found in repository; treating it as empty",
                operation="scan_tree",
                context={"repo": self.repo, "branch": self.branch, "path": path},
            )
            return []

        found.sort(key=lambda remote: remote.path)
        logger.info(
            f"Found {len(found)} function files",
            operation="scan_tree",
            context={"repo": self.repo, "branch": self.branch, "path": path},
        )
        return found

    def get_file(self, path: str) -> Optional[RemoteFile]:
        """
        Fetch metadata for one file.

        Returns:
            RemoteFile, or None if the file does not exist
        """
        try:
            entries = self.list_directory(path)
        except GitHubNotFoundError:
            return None

        for entry in entries:
            if entry.get("type") == "file" and entry.get("path", "").strip("/") == path.strip("/"):
                return RemoteFile.from_api(entry)
        return None

    def get_text(self, target: Union[str, RemoteFile]) -> str:
        """
        Download a file and decode it as UTF-8 text.

        Files above 1 MB come back without inline content; those are fetched
        from their ``download_url`` instead.

        Args:
            target: Repository path or a RemoteFile from ``scan_tree``

        Returns:
            Decoded file text (not normalized)

        Raises:
            GitHubAPIError: If the file is not a file or is not valid UTF-8
        """
        path = target.path if isinstance(target, RemoteFile) else target
        response = self._request(
            "GET",
            self._contents_url(path),
            operation="get_text",
            path=path,
            params={"ref": self.branch},
        )
        data = response.json()
        if not isinstance(data, dict) or data.get("type", "file") != "file":
            raise GitHubAPIError("Path is not a file", operation="get_text", path=path)

        content = data.get("content")
        if data.get("encoding") == "base64" and content:
            return self._decode_utf8(base64.b64decode(content), path)

        download_url = data.get("download_url")
        if data.get("size", 0) == 0 or not download_url:
            return ""

        raw = self._request("GET", download_url, operation="download_raw", path=path)
        return self._decode_utf8(raw.content, path)

    @staticmethod
    def _decode_utf8(data: bytes, path: str) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise GitHubAPIError("File is not valid UTF-8", operation="get_text", path=path) from e

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def put_text(
        self,
        path: str,
        text: str,
        message: str,
        sha: Optional[str] = None,
    ) -> RemoteFile:
        """
        Create or update a file with normalized text.

        GitHub requires the current blob sha to update an existing file. When
        ``sha`` is not supplied it is looked up first; a missing file is
        created.

        Args:
            path: Repository path of the file
            text: File text (normalized before upload)
            message: Commit message
            sha: Current blob sha from a previous scan, if known

        Returns:
            RemoteFile describing the committed file (with its new sha)

        Raises:
            GitHubConflictError: If ``sha`` is stale
        """
        path = path.strip("/")
        if sha is None:
            existing = self.get_file(path)
            sha = existing.sha if existing else None

        encoded = base64.b64encode(normalize_text(text).encode("utf-8")).decode("ascii")
        payload: Dict[str, Any] = {
            "message": message,
            "content": encoded,
            "branch": self.branch,
        }
        if sha:
            payload["sha"] = sha

        response = self._request(
            "PUT",
            self._contents_url(path),
            operation="put_text",
            path=path,
            json=payload,
        )
        data = response.json()
        committed = RemoteFile.from_api(data["content"])
        logger.info(
            "Updated file on GitHub" if sha else "Created file on GitHub",
            operation="put_text",
            context={
                "path": path,
                "sha": committed.sha,
                "commit": (data.get("commit") or {}).get("sha"),
            },
        )
        return committed
