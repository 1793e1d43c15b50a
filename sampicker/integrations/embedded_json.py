"""Extraction of JSON arrays injected into HTML script blocks.

Steam Community pages embed data as ``var rgGames = [...];`` inside
markup that is not well-formed enough for a DOM or JSON parser to handle
as a whole. The scanner below finds the marker, walks forward counting
bracket depth while tracking string and escape state, and decodes only
the balanced slice.
"""

from __future__ import annotations

import json
from typing import Any

from sampicker.core.errors import EmbeddedArrayFormatError

__all__ = ["extract_embedded_array", "find_balanced_array"]


def find_balanced_array(text: str, start: int) -> str:
    """Returns the bracket-balanced array literal beginning at ``start``.

    Brackets inside single- or double-quoted strings are ignored, and a
    backslash escapes the following character inside a string.

    Args:
        text: Source text.
        start: Index of the opening ``[``.

    Returns:
        The slice from the opening to the matching closing bracket.

    Raises:
        EmbeddedArrayFormatError: If ``start`` is not a ``[`` or the array
            is never closed.
    """
    if start < 0 or start >= len(text) or text[start] != "[":
        raise EmbeddedArrayFormatError("array start not found")

    depth = 0
    quote: str | None = None
    escaped = False

    for index in range(start, len(text)):
        char = text[index]

        if quote is not None:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue

        if char in ('"', "'"):
            quote = char
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]

    raise EmbeddedArrayFormatError("array is not terminated")


def extract_embedded_array(text: str, marker: str) -> list[Any]:
    """Decodes the JSON array that follows ``marker`` in a page.

    Args:
        text: Full page or script text.
        marker: Literal text preceding the array, e.g. ``"var rgGames ="``.

    Returns:
        The decoded list.

    Raises:
        EmbeddedArrayFormatError: If the marker is missing, no array
            follows it, the array is unterminated or not valid JSON.
    """
    position = text.find(marker)
    if position < 0:
        raise EmbeddedArrayFormatError(f"marker {marker!r} not found")

    start = text.find("[", position + len(marker))
    if start < 0:
        raise EmbeddedArrayFormatError(f"no array after marker {marker!r}")

    between = text[position + len(marker) : start]
    if between.strip() not in ("", "="):
        raise EmbeddedArrayFormatError(f"unexpected content after marker {marker!r}")

    literal = find_balanced_array(text, start)
    try:
        data = json.loads(literal)
    except json.JSONDecodeError as exc:
        raise EmbeddedArrayFormatError(f"array after {marker!r} is not valid JSON: {exc}") from exc

    if not isinstance(data, list):
        raise EmbeddedArrayFormatError(f"value after {marker!r} is not an array")
    return data
