"""Local function stores - the model side of a sync."""

from pathlib import Path
from typing import Optional

from .base import FunctionStore, FunctionStoreError
from .directory_store import DirectoryFunctionStore
from .tmdl_store import TmdlFunctionStore


def open_store(
    model_path: Optional[str] = None,
    functions_dir: Optional[str] = None,
    extension: str = ".dax",
) -> FunctionStore:
    """
    Open the local store selected by the caller.

    Args:
        model_path: TMDL ``functions.tmdl`` file or semantic model folder
        functions_dir: Folder of ``.dax`` files

    Raises:
        FunctionStoreError: If neither or both locations are given
    """
    if model_path and functions_dir:
        raise FunctionStoreError("Use either a TMDL model or a functions folder, not both")
    if model_path:
        return TmdlFunctionStore(Path(model_path))
    if functions_dir:
        return DirectoryFunctionStore(Path(functions_dir), extension=extension)
    raise FunctionStoreError(
        "No local model selected. Pass --model (TMDL) or --functions-dir (folder of .dax files)"
    )


__all__ = [
    "FunctionStore",
    "FunctionStoreError",
    "DirectoryFunctionStore",
    "TmdlFunctionStore",
    "open_store",
]
