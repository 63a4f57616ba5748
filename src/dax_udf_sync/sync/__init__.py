"""Sync orchestration."""

from .service import SyncError, SyncResult, SyncService

__all__ = ["SyncError", "SyncResult", "SyncService"]
