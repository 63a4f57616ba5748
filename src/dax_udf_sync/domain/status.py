"""Sync status model shared by the reconciler, reporter and CLI."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from dax_udf_sync.domain.function import FunctionDefinition, RemoteFile


class SyncStatus(Enum):
    """Comparison outcome for one function, with its display attributes."""

    IN_SYNC = ("in_sync", "in sync", "green")
    MODIFIED = ("modified", "modified", "red")
    LOCAL_ONLY = ("local_only", "local only", "yellow")
    REMOTE_ONLY = ("remote_only", "remote only", "blue")
    UNKNOWN = ("unknown", "unknown", "gray")

    def __init__(self, code: str, label: str, color: str):
        self.code = code
        self.label = label
        self.color = color

    @property
    def needs_push(self) -> bool:
        return self in (SyncStatus.LOCAL_ONLY, SyncStatus.MODIFIED)

    @property
    def needs_pull(self) -> bool:
        # UNKNOWN entries always have a remote file
        return self in (SyncStatus.REMOTE_ONLY, SyncStatus.MODIFIED, SyncStatus.UNKNOWN)


@dataclass
class SyncEntry:
    """One row of a status report."""

    name: str
    status: SyncStatus
    local: Optional[FunctionDefinition] = None
    remote: Optional[RemoteFile] = None
    error: Optional[str] = None

    @property
    def remote_path(self) -> Optional[str]:
        return self.remote.path if self.remote else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.code,
            "remote_path": self.remote_path,
            "remote_sha": self.remote.sha if self.remote else None,
            "local_source": self.local.source_path if self.local else None,
            "error": self.error,
        }
