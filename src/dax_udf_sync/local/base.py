"""Common interface for local collections of DAX functions."""

from abc import ABC, abstractmethod
from typing import List, Optional

from dax_udf_sync.domain.function import FunctionDefinition


class FunctionStoreError(Exception):
    """Raised when a local function store cannot be read or written."""

    pass


class FunctionStore(ABC):
    """
    Named function definitions held by the local semantic model.

    Implementations buffer ``upsert`` calls; nothing touches disk until
    ``save`` is called.
    """

    @property
    @abstractmethod
    def location(self) -> str:
        """Human-readable location of the store (file or folder)."""

    @abstractmethod
    def list_functions(self) -> List[FunctionDefinition]:
        """All functions, in store order."""

    @abstractmethod
    def get(self, name: str) -> Optional[FunctionDefinition]:
        """Function by name (case-insensitive), or None."""

    @abstractmethod
    def upsert(self, definition: FunctionDefinition) -> None:
        """Add a function or replace the expression of an existing one."""

    @abstractmethod
    def save(self) -> None:
        """Persist pending changes."""
