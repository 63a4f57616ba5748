"""
Sync Service - orchestrates scanning, comparison, upload and download.

Workflow:
1. Scan the repository folder for function files
2. Load local function definitions from the model
3. Reconcile both sides into per-function status entries
4. Push selected local functions to GitHub, or pull remote ones into the model
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from dax_udf_sync.comparison.reconciler import Reconciler
from dax_udf_sync.config.settings import Settings
from dax_udf_sync.domain.function import FunctionDefinition, RemoteFile, function_key
from dax_udf_sync.domain.status import SyncEntry, SyncStatus
from dax_udf_sync.github.client import GitHubContentsClient
from dax_udf_sync.github.exceptions import (
    GitHubAPIError,
    GitHubAuthenticationError,
    GitHubRateLimitError,
)
from dax_udf_sync.local.base import FunctionStore
from dax_udf_sync.utils.logger import get_logger, log_operation

logger = get_logger(__name__)


class SyncError(Exception):
    """Raised when a sync request cannot be carried out as asked."""

    pass


@dataclass
class SyncResult:
    """Outcome of a push or pull run."""

    uploaded: List[str] = field(default_factory=list)
    downloaded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, object]:
        return {
            "uploaded": list(self.uploaded),
            "downloaded": list(self.downloaded),
            "skipped": list(self.skipped),
            "failed": dict(self.failed),
            "dry_run": self.dry_run,
            "success": self.success,
        }


class SyncService:
    """Keep a local function store and a GitHub folder in sync."""

    def __init__(self, client: GitHubContentsClient, store: FunctionStore, settings: Settings):
        self.client = client
        self.store = store
        self.settings = settings
        self.reconciler = Reconciler(fetch_text=client.get_text)

    def scan_remote(self) -> List[RemoteFile]:
        return self.client.scan_tree(path=self.settings.functions_path)

    @log_operation("status")
    def status(self, names: Optional[Iterable[str]] = None) -> List[SyncEntry]:
        """
        Compare local and remote functions.

        Args:
            names: Restrict the report to these functions (case-insensitive)

        Raises:
            SyncError: If a requested name exists on neither side
        """
        selected = self._selection(names)
        local_functions = self.store.list_functions()
        remote_files = self.scan_remote()

        if selected is not None:
            known = {definition.key for definition in local_functions}
            known.update(remote.key for remote in remote_files)
            missing = sorted(name for key, name in selected.items() if key not in known)
            if missing:
                raise SyncError(f"Unknown function(s): {', '.join(missing)}")
            local_functions = [d for d in local_functions if d.key in selected]
            remote_files = [r for r in remote_files if r.key in selected]

        return self.reconciler.reconcile(local_functions, remote_files)

    @staticmethod
    def _selection(names: Optional[Iterable[str]]) -> Optional[Dict[str, str]]:
        if not names:
            return None
        return {function_key(name): name for name in names}

    @log_operation("push")
    def push(self, names: Optional[Iterable[str]] = None, dry_run: bool = False) -> SyncResult:
        """
        Upload local functions to GitHub.

        Without ``names`` every LOCAL_ONLY and MODIFIED function is uploaded.
        Named functions are uploaded unless already in sync; naming a
        function that only exists remotely is reported as a failure.
        """
        result = SyncResult(dry_run=dry_run)
        entries = self.status(names=names)

        for entry in entries:
            if not entry.status.needs_push:
                if entry.status is SyncStatus.UNKNOWN:
                    result.failed[entry.name] = entry.error or "remote state unknown"
                elif entry.local is None and names:
                    result.failed[entry.name] = "function does not exist in the local model"
                else:
                    result.skipped.append(entry.name)
                continue

            self._upload(entry, result)

        logger.info("Push finished", operation="push", context=result.to_dict())
        return result

    def _upload(self, entry: SyncEntry, result: SyncResult) -> None:
        definition = entry.local
        exists = entry.remote is not None
        path = entry.remote.path if exists else self.settings.remote_path_for(definition.name)
        message = self.settings.commit_message(definition.name, exists=exists)

        if result.dry_run:
            logger.info(
                "Dry run: would upload function",
                operation="push",
                context={"name": definition.name, "path": path, "message": message},
            )
            result.uploaded.append(definition.name)
            return

        try:
            self.client.put_text(
                path,
                definition.expression,
                message=message,
                sha=entry.remote.sha if exists else None,
            )
            result.uploaded.append(definition.name)
        except (GitHubAuthenticationError, GitHubRateLimitError):
            raise
        except GitHubAPIError as e:
            logger.error(
                "Failed to upload function",
                operation="push",
                context={"name": definition.name, "path": path},
                error=str(e),
            )
            result.failed[definition.name] = str(e)

    @log_operation("pull")
    def pull(
        self,
        names: Optional[Iterable[str]] = None,
        overwrite: bool = False,
        dry_run: bool = False,
    ) -> SyncResult:
        """
        Download remote functions into the local store.

        Without ``names`` every REMOTE_ONLY function is downloaded. A function
        that also exists locally (MODIFIED, or UNKNOWN when its remote text
        could not be read) is only replaced when ``overwrite`` is set or it
        is named explicitly.
        """
        result = SyncResult(dry_run=dry_run)
        entries = self.status(names=names)

        for entry in entries:
            if not entry.status.needs_pull:
                if entry.remote is None and names:
                    result.failed[entry.name] = "function does not exist in the repository"
                else:
                    result.skipped.append(entry.name)
                continue
            if entry.local is not None and not (overwrite or names):
                logger.info(
                    "Keeping local changes; use overwrite to replace them",
                    operation="pull",
                    context={"name": entry.name},
                )
                result.skipped.append(entry.name)
                continue

            self._download(entry, result)

        if result.downloaded and not dry_run:
            self.store.save()

        logger.info("Pull finished", operation="pull", context=result.to_dict())
        return result

    def _download(self, entry: SyncEntry, result: SyncResult) -> None:
        if result.dry_run:
            logger.info(
                "Dry run: would download function",
                operation="pull",
                context={"name": entry.name, "path": entry.remote.path},
            )
            result.downloaded.append(entry.name)
            return

        try:
            text = self.client.get_text(entry.remote)
        except (GitHubAuthenticationError, GitHubRateLimitError):
            raise
        except GitHubAPIError as e:
            logger.error(
                "Failed to download function",
                operation="pull",
                context={"name": entry.name, "path": entry.remote.path},
                error=str(e),
            )
            result.failed[entry.name] = str(e)
            return

        self.store.upsert(FunctionDefinition(name=entry.name, expression=text))
        result.downloaded.append(entry.name)
