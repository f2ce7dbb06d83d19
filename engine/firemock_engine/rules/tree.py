"""
Immutable tree helpers for the in-memory data store.

The data tree is made of plain dicts and JSON scalars. Nodes inside a
snapshot are never mutated: set_in() copies the dicts along the written path
and shares every untouched subtree with the previous version.

Stored form:
    - A mapping node is a dict of child key -> child node
    - A leaf is a bool, int, float or str
    - A node with a priority carries a ".priority" key; a leaf with a
      priority is stored as {".value": leaf, ".priority": p}
    - None and empty mappings are pruned: a node without children does not
      exist
    - Lists are stored as mappings keyed "0".."n-1"

How to change safely:
    - Anything that returns data to callers must go through to_python() so
      callers never hold references into a live snapshot
"""

from __future__ import annotations

import math
from typing import Any, Iterator, Mapping, Sequence

from ..errors import InvalidValueError

PRIORITY_KEY = ".priority"
VALUE_KEY = ".value"
META_KEYS = frozenset({PRIORITY_KEY, VALUE_KEY})

_ILLEGAL_KEY_CHARS = set(".#$[]/")


def _check_key(key: Any, path: str) -> str:
    if isinstance(key, bool) or not isinstance(key, (str, int)):
        raise InvalidValueError(f"Key {key!r} at /{path} must be a string", path=path)
    key = str(key)
    if not key:
        raise InvalidValueError(f"Empty key at /{path}", path=path)
    if any(c in _ILLEGAL_KEY_CHARS or ord(c) < 0x20 or ord(c) == 0x7F for c in key):
        raise InvalidValueError(
            f"Key '{key}' at /{path} contains one of . # $ / [ ] or a control character",
            path=path,
        )
    return key


def _check_priority(priority: Any, path: str) -> None:
    if priority is None:
        return
    if isinstance(priority, bool) or not isinstance(priority, (str, int, float)):
        raise InvalidValueError(
            f"Priority at /{path} must be a string, number or None, got {type(priority).__name__}",
            path=path,
        )
    if isinstance(priority, float) and not math.isfinite(priority):
        raise InvalidValueError(f"Priority at /{path} must be finite", path=path)


def _child_path(path: str, key: str) -> str:
    return f"{path}/{key}" if path else key


def normalize_value(value: Any, priority: Any = None, path: str = "") -> Any:
    """Convert a caller value into its stored form.

    Args:
        value: JSON-like Python value (dict, list, tuple, str, number, bool, None)
        priority: Optional priority to attach to the node
        path: Path of the node, used in error messages

    Returns:
        Stored node, or None if the value holds no data

    Raises:
        InvalidValueError: If the value, a key or the priority is not storable
    """
    _check_priority(priority, path)
    node = _normalize(value, path)
    if node is None or priority is None:
        return node
    if isinstance(node, dict):
        return {**node, PRIORITY_KEY: priority}
    return {VALUE_KEY: node, PRIORITY_KEY: priority}


def _normalize(value: Any, path: str) -> Any:
    if value is None:
        return None
    if isinstance(value, bool) or isinstance(value, (int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidValueError(f"Value at /{path} must be a finite number", path=path)
        return value
    if isinstance(value, (list, tuple)):
        value = {str(i): v for i, v in enumerate(value)}
    if isinstance(value, Mapping):
        if VALUE_KEY in value:
            extra = set(value) - META_KEYS
            if extra:
                raise InvalidValueError(
                    f"Node at /{path} mixes '.value' with children {sorted(extra)}", path=path
                )
            return normalize_value(value[VALUE_KEY], value.get(PRIORITY_KEY), path)

        node: dict[str, Any] = {}
        for raw_key, raw_child in value.items():
            if raw_key == PRIORITY_KEY:
                continue
            key = _check_key(raw_key, path)
            child = _normalize(raw_child, _child_path(path, key))
            if child is not None:
                node[key] = child
        if not node:
            return None
        if value.get(PRIORITY_KEY) is not None:
            _check_priority(value[PRIORITY_KEY], path)
            node[PRIORITY_KEY] = value[PRIORITY_KEY]
        return node
    raise InvalidValueError(
        f"Value at /{path} has unsupported type {type(value).__name__}", path=path
    )


def is_leaf(node: Any) -> bool:
    """Whether a stored node is a leaf (possibly wrapped with a priority)."""
    return not isinstance(node, dict) or VALUE_KEY in node


def children(node: Any) -> Iterator[tuple[str, Any]]:
    """Iterate (key, child) pairs of a stored node in insertion order."""
    if is_leaf(node) or node is None:
        return
    for key, child in node.items():
        if key not in META_KEYS:
            yield key, child


def get_in(node: Any, segments: Sequence[str]) -> Any:
    """Read the stored node at ``segments``; absent segments give None."""
    for segment in segments:
        if node is None or is_leaf(node):
            return None
        node = node.get(segment)
    return node


def set_in(node: Any, segments: Sequence[str], value: Any) -> Any:
    """Return a new tree with ``value`` (already normalized) at ``segments``.

    The input tree is never modified. Writing below a leaf replaces the leaf
    with a mapping. Parents left without children are pruned.
    """
    if not segments:
        return value

    head, rest = segments[0], segments[1:]
    base: dict[str, Any] = node if isinstance(node, dict) and VALUE_KEY not in node else {}
    child = set_in(base.get(head), rest, value)

    updated = dict(base)
    if child is None:
        updated.pop(head, None)
    else:
        updated[head] = child

    if not any(k not in META_KEYS for k in updated):
        return None
    return updated


def priority_of(node: Any) -> Any:
    """Priority stored on a node, or None."""
    if isinstance(node, dict):
        return node.get(PRIORITY_KEY)
    return None


def to_python(node: Any) -> Any:
    """Convert a stored node into a fresh caller-facing value.

    Priorities are dropped, priority-wrapped leaves are unwrapped and dense
    "0".."n-1" mappings come back as lists.
    """
    if not isinstance(node, dict):
        return node
    if VALUE_KEY in node:
        return node[VALUE_KEY]

    items = [(k, to_python(v)) for k, v in node.items() if k not in META_KEYS]
    keys = [k for k, _ in items]
    if keys and all(k.isdigit() and (k == "0" or not k.startswith("0")) for k in keys):
        indices = sorted(int(k) for k in keys)
        if indices == list(range(len(indices))):
            by_index = {int(k): v for k, v in items}
            return [by_index[i] for i in range(len(indices))]
    return dict(items)


def to_export(node: Any) -> Any:
    """Convert a stored node into a fresh value keeping priorities."""
    if not isinstance(node, dict):
        return node
    return {k: to_export(v) for k, v in node.items()}
