"""
Path algebra for the in-memory tree.

A path is a slash-delimited sequence of non-empty segments. The root is the
empty string. All helpers are pure: they never touch data.

Invariants:
    - Normalized paths have no leading, trailing or repeated slashes
    - join() of two normalized paths is normalized
    - Segments never contain '.', '#', '$', '[', ']' or control characters
"""

from __future__ import annotations

import re

from .errors import InvalidPathError

ROOT = ""

_ILLEGAL_SEGMENT = re.compile(r"[.#$\[\]\x00-\x1f\x7f]")


def split(path: str | None) -> tuple[str, ...]:
    """Split a path into validated segments.

    Args:
        path: Slash-delimited path; None or "" is the root

    Returns:
        Tuple of segments (empty for the root)

    Raises:
        InvalidPathError: If a segment contains an illegal character
    """
    if not path:
        return ()
    if not isinstance(path, str):
        raise InvalidPathError(str(path), "path must be a string")

    segments = tuple(s for s in path.split("/") if s)
    for segment in segments:
        if _ILLEGAL_SEGMENT.search(segment):
            raise InvalidPathError(
                path, f"segment '{segment}' contains one of . # $ [ ] or a control character"
            )
    return segments


def normalize(path: str | None) -> str:
    """Normalize a path (drop empty segments and surrounding slashes)."""
    return "/".join(split(path))


def join(parent: str, child: str) -> str:
    """Concatenate two paths and normalize the result."""
    return "/".join(split(parent) + split(child))


def key_of(path: str) -> str | None:
    """Last segment of a path, None for the root."""
    segments = split(path)
    return segments[-1] if segments else None


def parent_of(path: str) -> str | None:
    """Parent path, None for the root."""
    segments = split(path)
    if not segments:
        return None
    return "/".join(segments[:-1])


def is_ancestor(ancestor: str, path: str) -> bool:
    """Whether ``ancestor`` is ``path`` itself or one of its ancestors."""
    a = split(ancestor)
    return split(path)[: len(a)] == a
