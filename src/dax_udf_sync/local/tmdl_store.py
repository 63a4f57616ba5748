"""
TMDL function store.

Reads and writes the ``functions.tmdl`` file of a semantic model definition
(PBIP projects keep it under ``<Model>.SemanticModel/definition/``).

Supported layout::

    /// Adds VAT to an amount
    function 'Local.AddTax' =
            (amount : NUMERIC) =>
                amount * 1.2

        lineageTag: 6f0f2f59-...

Expressions may also follow ``=`` on the header line or sit in a
triple-backtick fence. Blocks that are not touched by an upsert are written
back exactly as they were read.
"""

import re
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from dax_udf_sync.domain.function import FunctionDefinition, function_key
from dax_udf_sync.local.base import FunctionStore, FunctionStoreError
from dax_udf_sync.text.normalize import normalize_text
from dax_udf_sync.utils.logger import get_logger

logger = get_logger(__name__)

FUNCTIONS_FILE = "functions.tmdl"
FENCE = "```"

FUNCTION_HEADER = re.compile(r"^function\s+(?P<name>'(?:[^']|'')*'|[^\s=]+)\s*=\s*(?P<rest>.*)$")
PLAIN_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_name(name: str) -> str:
    """Quote a TMDL object name when it is not a plain identifier."""
    if PLAIN_NAME.match(name):
        return name
    return "'" + name.replace("'", "''") + "'"


def unquote_name(token: str) -> str:
    if len(token) >= 2 and token.startswith("'") and token.endswith("'"):
        return token[1:-1].replace("''", "'")
    return token


@dataclass
class _FunctionBlock:
    definition: FunctionDefinition
    raw_lines: List[str]
    dirty: bool = False


@dataclass
class _RawBlock:
    lines: List[str] = field(default_factory=list)


def _is_expression_line(line: str) -> bool:
    return line.startswith("\t\t")


def _is_property_line(line: str) -> bool:
    return line.startswith("\t") and not line.startswith("\t\t")


def _next_content_line(lines: List[str], index: int) -> Optional[str]:
    while index < len(lines):
        if lines[index].strip():
            return lines[index]
        index += 1
    return None


def parse_tmdl(text: str, source_path: Optional[str] = None) -> List[Union[_FunctionBlock, _RawBlock]]:
    """
    Split TMDL text into function blocks and verbatim raw blocks.

    Raises:
        FunctionStoreError: On an unterminated expression fence
    """
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    blocks: List[Union[_FunctionBlock, _RawBlock]] = []
    raw = _RawBlock()
    doc_lines: List[str] = []
    i = 0

    while i < len(lines):
        line = lines[i]

        if line.startswith("///"):
            doc_lines.append(line)
            i += 1
            continue

        match = FUNCTION_HEADER.match(line)
        if not match:
            raw.lines.extend(doc_lines)
            doc_lines = []
            raw.lines.append(line)
            i += 1
            continue

        if raw.lines:
            blocks.append(raw)
            raw = _RawBlock()

        start = i - len(doc_lines)
        name = unquote_name(match.group("name"))
        rest = match.group("rest").strip()
        i += 1

        if rest == FENCE:
            fenced: List[str] = []
            while i < len(lines) and lines[i].strip() != FENCE:
                fenced.append(lines[i])
                i += 1
            if i >= len(lines):
                raise FunctionStoreError(
                    f"Unterminated ``` expression for function '{name}' in {source_path}"
                )
            i += 1
            expression = textwrap.dedent("\n".join(fenced))
        else:
            body: List[str] = []
            while i < len(lines):
                if _is_expression_line(lines[i]):
                    body.append(lines[i])
                elif not lines[i].strip():
                    upcoming = _next_content_line(lines, i)
                    if upcoming is None or not _is_expression_line(upcoming):
                        break
                    body.append("")
                else:
                    break
                i += 1
            dedented = textwrap.dedent("\n".join(body)) if body else ""
            expression = "\n".join(part for part in (rest, dedented) if part)

        properties: List[str] = []
        while i < len(lines):
            if _is_property_line(lines[i]) or (properties and _is_expression_line(lines[i])):
                properties.append(lines[i][1:])
            elif not lines[i].strip():
                upcoming = _next_content_line(lines, i)
                if upcoming is None or not upcoming.startswith("\t"):
                    break
            else:
                break
            i += 1

        description = "\n".join(doc[3:].strip() for doc in doc_lines)
        doc_lines = []
        blocks.append(
            _FunctionBlock(
                definition=FunctionDefinition(
                    name=name,
                    expression=expression,
                    description=description,
                    source_path=source_path,
                    properties=properties,
                ),
                raw_lines=lines[start:i],
            )
        )

    raw.lines.extend(doc_lines)
    if raw.lines:
        blocks.append(raw)
    return blocks


def render_function(definition: FunctionDefinition) -> List[str]:
    """Render one function as TMDL lines."""
    lines = [f"/// {doc}".rstrip() for doc in definition.description.splitlines()]
    lines.append(f"function {quote_name(definition.name)} =")
    for expression_line in normalize_text(definition.expression).splitlines():
        lines.append(f"\t\t{expression_line}" if expression_line else "")
    if definition.properties:
        lines.append("")
        lines.extend(f"\t{prop}" for prop in definition.properties)
    return lines


class TmdlFunctionStore(FunctionStore):
    """Function store backed by a TMDL ``functions.tmdl`` file."""

    def __init__(self, path: Path):
        """
        Args:
            path: ``functions.tmdl`` itself, a ``definition`` folder, or a
                ``*.SemanticModel`` folder containing ``definition/``
        """
        self.path = self._resolve(Path(path))
        self._newline = "\n"
        self._blocks: List[Union[_FunctionBlock, _RawBlock]] = []
        self._load()

    @staticmethod
    def _resolve(path: Path) -> Path:
        if path.suffix.lower() == ".tmdl":
            return path
        if (path / "definition").is_dir():
            return path / "definition" / FUNCTIONS_FILE
        return path / FUNCTIONS_FILE

    @property
    def location(self) -> str:
        return str(self.path)

    def _load(self) -> None:
        if not self.path.exists():
            logger.info(
                "TMDL functions file does not exist yet; starting empty",
                operation="load_tmdl",
                context={"path": str(self.path)},
            )
            return

        with open(self.path, "r", encoding="utf-8-sig", newline="") as f:
            text = f.read()
        if "\r\n" in text:
            self._newline = "\r\n"
        self._blocks = parse_tmdl(text, source_path=str(self.path))
        logger.debug(
            f"Loaded {len(self.list_functions())} functions",
            operation="load_tmdl",
            context={"path": str(self.path)},
        )

    def _function_blocks(self) -> List[_FunctionBlock]:
        return [block for block in self._blocks if isinstance(block, _FunctionBlock)]

    def list_functions(self) -> List[FunctionDefinition]:
        return [block.definition for block in self._function_blocks()]

    def get(self, name: str) -> Optional[FunctionDefinition]:
        key = function_key(name)
        for block in self._function_blocks():
            if block.definition.key == key:
                return block.definition
        return None

    def upsert(self, definition: FunctionDefinition) -> None:
        key = definition.key
        for block in self._function_blocks():
            if block.definition.key == key:
                current = block.definition
                block.definition = FunctionDefinition(
                    name=current.name,
                    expression=definition.expression,
                    description=definition.description or current.description,
                    source_path=str(self.path),
                    properties=definition.properties or current.properties,
                )
                block.dirty = True
                return

        if self._blocks and not isinstance(self._blocks[-1], _FunctionBlock):
            last = self._blocks[-1]
            if last.lines and last.lines[-1].strip():
                last.lines.append("")
        elif self._blocks:
            self._blocks.append(_RawBlock([""]))

        self._blocks.append(
            _FunctionBlock(
                definition=FunctionDefinition(
                    name=definition.name,
                    expression=definition.expression,
                    description=definition.description,
                    source_path=str(self.path),
                    properties=list(definition.properties),
                ),
                raw_lines=[],
                dirty=True,
            )
        )

    def render(self) -> str:
        """Current file content."""
        lines: List[str] = []
        for block in self._blocks:
            if isinstance(block, _RawBlock):
                lines.extend(block.lines)
            elif block.dirty:
                lines.extend(render_function(block.definition))
            else:
                lines.extend(block.raw_lines)
        return self._newline.join(lines) + self._newline if lines else ""

    def save(self) -> None:
        dirty = [block for block in self._function_blocks() if block.dirty]
        if not dirty:
            return

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8", newline="") as f:
                f.write(self.render())
        except OSError as e:
            raise FunctionStoreError(f"Cannot write {self.path}: {e}") from e
        for block in dirty:
            block.raw_lines = render_function(block.definition)
            block.dirty = False

        logger.info(
            f"Saved {len(dirty)} changed functions",
            operation="save_tmdl",
            context={"path": str(self.path), "functions": [b.definition.name for b in dirty]},
        )
