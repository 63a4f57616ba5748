"""Domain models."""

from .function import FunctionDefinition, RemoteFile, function_key
from .status import SyncEntry, SyncStatus

__all__ = [
    "FunctionDefinition",
    "RemoteFile",
    "SyncEntry",
    "SyncStatus",
    "function_key",
]
