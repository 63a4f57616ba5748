"""
Function domain models.

A ``FunctionDefinition`` is one DAX user-defined function as held by the
local semantic model. A ``RemoteFile`` is a leaf text file found while
scanning the GitHub repository tree.
"""

import posixpath
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from dax_udf_sync.text.normalize import normalize_text


def function_key(name: str) -> str:
    """Lookup key for a function name (DAX object names are case-insensitive)."""
    return name.strip().casefold()


@dataclass
class FunctionDefinition:
    """
    DAX user-defined function.

    Attributes:
        name: Function name as declared in the model (e.g. ``Local.AddTax``)
        expression: DAX expression body, including the parameter list
        description: Optional description (``///`` lines in TMDL)
        source_path: File the definition was read from, if any
        properties: Extra TMDL property lines (``lineageTag: ...``) kept verbatim
    """

    name: str
    expression: str
    description: str = ""
    source_path: Optional[str] = None
    properties: List[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return function_key(self.name)

    @property
    def normalized_expression(self) -> str:
        return normalize_text(self.expression)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RemoteFile:
    """
    Leaf text-file descriptor from the repository tree.

    Attributes:
        path: Repository path (``functions/Math/AddTax.dax``)
        name: File name (``AddTax.dax``)
        sha: Git blob sha; required by GitHub to update the file
        size: File size in bytes
        download_url: Raw download URL (used when the API omits content)
    """

    path: str
    name: str
    sha: str
    size: int = 0
    download_url: Optional[str] = None

    @property
    def function_name(self) -> str:
        stem, _ = posixpath.splitext(self.name)
        return stem

    @property
    def key(self) -> str:
        return function_key(self.function_name)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteFile":
        """
        Create RemoteFile from a GitHub contents API entry.

        Args:
            data: JSON object from ``GET /repos/{owner}/{repo}/contents/{path}``

        Returns:
            RemoteFile instance
        """
        return cls(
            path=data["path"],
            name=data.get("name") or posixpath.basename(data["path"]),
            sha=data.get("sha", ""),
            size=int(data.get("size") or 0),
            download_url=data.get("download_url"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
