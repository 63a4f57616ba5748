"""
Folder-of-files function store.

Each ``.dax`` file below the root folder holds one function; the file name
without extension is the function name. This mirrors the repository layout,
so a clone of the function library can itself be used as the local side.
"""

from pathlib import Path
from typing import Dict, List, Optional

from dax_udf_sync.domain.function import FunctionDefinition, function_key
from dax_udf_sync.local.base import FunctionStore, FunctionStoreError
from dax_udf_sync.text.normalize import normalize_text
from dax_udf_sync.utils.logger import get_logger

logger = get_logger(__name__)


class DirectoryFunctionStore(FunctionStore):
    """Function store backed by a directory tree of ``.dax`` files."""

    def __init__(self, root: Path, extension: str = ".dax"):
        self.root = Path(root)
        self.extension = extension
        self._functions: Dict[str, FunctionDefinition] = {}
        self._pending: Dict[str, FunctionDefinition] = {}
        self._load()

    @property
    def location(self) -> str:
        return str(self.root)

    def _load(self) -> None:
        if not self.root.exists():
            logger.info(
                "Functions folder does not exist yet; starting empty",
                operation="load_directory",
                context={"root": str(self.root)},
            )
            return
        if not self.root.is_dir():
            raise FunctionStoreError(f"Not a directory: {self.root}")

        for path in sorted(self.root.rglob(f"*{self.extension}")):
            if not path.is_file():
                continue
            definition = FunctionDefinition(
                name=path.stem,
                expression=path.read_text(encoding="utf-8"),
                source_path=str(path),
            )
            if definition.key in self._functions:
                other = self._functions[definition.key].source_path
                raise FunctionStoreError(
                    f"Function '{definition.name}' is defined twice: {other} and {path}"
                )
            self._functions[definition.key] = definition

        logger.debug(
            f"Loaded {len(self._functions)} functions",
            operation="load_directory",
            context={"root": str(self.root)},
        )

    def list_functions(self) -> List[FunctionDefinition]:
        return list(self._functions.values())

    def get(self, name: str) -> Optional[FunctionDefinition]:
        return self._functions.get(function_key(name))

    def upsert(self, definition: FunctionDefinition) -> None:
        existing = self._functions.get(definition.key)
        target = (
            Path(existing.source_path)
            if existing and existing.source_path
            else self.root / f"{definition.name}{self.extension}"
        )
        updated = FunctionDefinition(
            name=existing.name if existing else definition.name,
            expression=definition.expression,
            description=definition.description,
            source_path=str(target),
        )
        self._functions[updated.key] = updated
        self._pending[updated.key] = updated

    def save(self) -> None:
        for definition in self._pending.values():
            path = Path(definition.source_path)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(normalize_text(definition.expression), encoding="utf-8", newline="\n")
            except OSError as e:
                raise FunctionStoreError(f"Cannot write function file {path}: {e}") from e
            logger.info(
                "Wrote function file",
                operation="save_directory",
                context={"name": definition.name, "path": str(path)},
            )
        self._pending.clear()
