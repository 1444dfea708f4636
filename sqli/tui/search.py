"""
Plain-text search and replace over the editor buffer

Positions are character offsets into the buffer text. Matching is literal
and case-sensitive; searches wrap around the end (or start) of the text.
"""

from typing import Optional, Tuple


def find(text: str, pattern: str, start: int = 0, forward: bool = True) -> Optional[int]:
    """
    Offset of the next match at or after ``start`` (before it when searching backwards).

    Returns None when the pattern is empty or does not occur at all.
    """
    if not pattern:
        return None
    start = max(0, min(start, len(text)))
    if forward:
        position = text.find(pattern, start)
        if position == -1:
            position = text.find(pattern, 0, start + len(pattern) - 1)
    else:
        position = text.rfind(pattern, 0, start)
        if position == -1:
            position = text.rfind(pattern, start)
    return None if position == -1 else position


def replace_at(text: str, offset: int, pattern: str, replacement: str) -> Optional[str]:
    """Replace the match at ``offset``; None if the pattern is not there."""
    if not pattern or not text.startswith(pattern, offset):
        return None
    return text[:offset] + replacement + text[offset + len(pattern):]


def replace_all(text: str, pattern: str, replacement: str) -> Tuple[str, int]:
    if not pattern:
        return text, 0
    count = text.count(pattern)
    return text.replace(pattern, replacement), count


def location(text: str, offset: int) -> Tuple[int, int]:
    """(row, column) of an offset, both zero-based."""
    row = text.count("\n", 0, offset)
    column = offset - (text.rfind("\n", 0, offset) + 1)
    return row, column
