"""Comparison module - reconcile local and remote functions, report status."""

from .reconciler import Reconciler, compare, index_remote_files
from .report import StatusReporter

__all__ = [
    "Reconciler",
    "StatusReporter",
    "compare",
    "index_remote_files",
]
