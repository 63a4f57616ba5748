"""Text normalization helpers."""

from .normalize import normalize_text, texts_equal

__all__ = ["normalize_text", "texts_equal"]
