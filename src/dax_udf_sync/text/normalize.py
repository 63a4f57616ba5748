"""
Text normalization applied before comparing or uploading DAX source.

Editors, Git clients and the GitHub web UI disagree on line endings and
trailing whitespace. Normalizing both sides first means only real changes
to a function body show up as a mismatch.
"""

from typing import Optional

BOM = "\ufeff"


def normalize_text(text: Optional[str]) -> str:
    """
    Normalize DAX source text.

    Steps:
        1. ``None`` becomes an empty string and leading BOMs are dropped
        2. ``\\r\\n`` and lone ``\\r`` become ``\\n``
        3. trailing spaces/tabs are trimmed from every line
        4. trailing blank lines are removed
        5. exactly one trailing newline is added (empty text stays empty)

    Args:
        text: Raw text from the model or the repository

    Returns:
        Normalized text
    """
    if not text:
        return ""

    text = text.lstrip(BOM)

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [line.rstrip(" \t") for line in text.split("\n")]

    while lines and not lines[-1]:
        lines.pop()

    if not lines:
        return ""

    return "\n".join(lines) + "\n"


def texts_equal(left: Optional[str], right: Optional[str]) -> bool:
    """Whole-text equality after normalization."""
    return normalize_text(left) == normalize_text(right)
