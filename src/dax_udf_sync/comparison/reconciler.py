"""
Reconciler - pairs local functions with remote files and compares them.

Comparison is a whole-text equality check after normalization; there is no
structural diff.
"""

from typing import Callable, Dict, Iterable, List, Optional

from dax_udf_sync.domain.function import FunctionDefinition, RemoteFile
from dax_udf_sync.domain.status import SyncEntry, SyncStatus
from dax_udf_sync.github.exceptions import (
    GitHubAPIError,
    GitHubAuthenticationError,
    GitHubRateLimitError,
)
from dax_udf_sync.text.normalize import normalize_text
from dax_udf_sync.utils.logger import get_logger

logger = get_logger(__name__)

FetchText = Callable[[RemoteFile], str]


def compare(local_text: Optional[str], remote_text: Optional[str]) -> SyncStatus:
    """Status for a function present on both sides."""
    if normalize_text(local_text) == normalize_text(remote_text):
        return SyncStatus.IN_SYNC
    return SyncStatus.MODIFIED


def index_remote_files(remote_files: Iterable[RemoteFile]) -> Dict[str, RemoteFile]:
    """
    Map function keys to remote files.

    When two files resolve to the same function name the first path (in
    sorted order) wins.
    """
    indexed: Dict[str, RemoteFile] = {}
    for remote in sorted(remote_files, key=lambda item: item.path):
        if remote.key in indexed:
            logger.warning(
                "Duplicate function file in repository; ignoring later path",
                operation="reconcile",
                context={"kept": indexed[remote.key].path, "ignored": remote.path},
            )
            continue
        indexed[remote.key] = remote
    return indexed


class Reconciler:
    """Build per-function sync entries from both sides."""

    def __init__(self, fetch_text: FetchText):
        """
        Args:
            fetch_text: Callable returning the raw text of a remote file
                (normally ``GitHubContentsClient.get_text``)
        """
        self.fetch_text = fetch_text

    def reconcile(
        self,
        local_functions: Iterable[FunctionDefinition],
        remote_files: Iterable[RemoteFile],
    ) -> List[SyncEntry]:
        """
        Compare local definitions with remote files.

        Raises:
            GitHubAuthenticationError: Token rejected while fetching content
            GitHubRateLimitError: Rate limit hit while fetching content
        """
        remote_index = index_remote_files(remote_files)
        entries: List[SyncEntry] = []
        seen = set()

        for definition in local_functions:
            seen.add(definition.key)
            remote = remote_index.get(definition.key)
            if remote is None:
                entries.append(SyncEntry(definition.name, SyncStatus.LOCAL_ONLY, local=definition))
                continue
            entries.append(self._compare_entry(definition, remote))

        for key, remote in remote_index.items():
            if key not in seen:
                entries.append(
                    SyncEntry(remote.function_name, SyncStatus.REMOTE_ONLY, remote=remote)
                )

        entries.sort(key=lambda entry: entry.name.casefold())
        counts: Dict[str, int] = {}
        for entry in entries:
            counts[entry.status.code] = counts.get(entry.status.code, 0) + 1
        logger.info("Reconciled functions", operation="reconcile", context=counts)
        return entries

    def _compare_entry(self, definition: FunctionDefinition, remote: RemoteFile) -> SyncEntry:
        try:
            remote_text = self.fetch_text(remote)
        except (GitHubAuthenticationError, GitHubRateLimitError):
            raise
        except GitHubAPIError as e:
            logger.warning(
                "Could not fetch remote function text",
                operation="reconcile",
                context={"name": definition.name, "path": remote.path},
                error=str(e),
            )
            return SyncEntry(
                definition.name, SyncStatus.UNKNOWN, local=definition, remote=remote, error=str(e)
            )

        status = compare(definition.expression, remote_text)
        logger.debug(
            "Compared function",
            operation="reconcile",
            context={"name": definition.name, "path": remote.path, "status": status.code},
        )
        return SyncEntry(definition.name, status, local=definition, remote=remote)
