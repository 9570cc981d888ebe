"""
Value model for schema-less documents.

Documents are plain ``dict`` objects (insertion ordered) whose values are
strings, numbers, booleans, ``None``, nested dicts or lists. A field that is
not present resolves to ``MISSING``, which is distinct from ``None``.
"""

from __future__ import annotations

from typing import Any, Dict, Hashable, Tuple


class _Missing:
    """Marker for an absent field."""

    _instance = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

Document = Dict[str, Any]

# Cross-type ordering used by sort, $min and $max.
_RANK_NULL = 0
_RANK_NUMBER = 1
_RANK_STRING = 2
_RANK_DOCUMENT = 3
_RANK_ARRAY = 4
_RANK_BOOLEAN = 5


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def type_rank(value: Any) -> int:
    if value is None:
        return _RANK_NULL
    if isinstance(value, bool):
        return _RANK_BOOLEAN
    if is_number(value):
        return _RANK_NUMBER
    if isinstance(value, str):
        return _RANK_STRING
    if isinstance(value, dict):
        return _RANK_DOCUMENT
    if isinstance(value, (list, tuple)):
        return _RANK_ARRAY
    raise TypeError(f"Unsupported document value type: {type(value).__name__}")


def type_name(value: Any) -> str:
    if value is MISSING:
        return "missing"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


def get_path(document: Any, path: str) -> Any:
    """Resolve a dot-separated path; returns MISSING when any step is absent."""
    current = document
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current


def set_path(document: Document, path: str, value: Any) -> None:
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value


def unset_path(document: Document, path: str) -> None:
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        current = current.get(part)
        if not isinstance(current, dict):
            return
    current.pop(parts[-1], None)


def values_equal(left: Any, right: Any) -> bool:
    """Deep structural equality; booleans never equal numbers."""
    if left is MISSING or right is MISSING:
        return left is right
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if is_number(left) and is_number(right):
        return left == right
    if isinstance(left, dict) and isinstance(right, dict):
        if list(left.keys()) != list(right.keys()):
            return False
        return all(values_equal(left[key], right[key]) for key in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        if len(left) != len(right):
            return False
        return all(values_equal(a, b) for a, b in zip(left, right))
    return type(left) is type(right) and left == right


def sort_key(value: Any) -> Tuple[Any, ...]:
    """Total-order key across all value types."""
    rank = type_rank(value)
    if rank == _RANK_NULL:
        return (rank, 0)
    if rank == _RANK_DOCUMENT:
        return (rank, tuple((key, sort_key(item)) for key, item in value.items()))
    if rank == _RANK_ARRAY:
        return (rank, tuple(sort_key(item) for item in value))
    return (rank, value)


def freeze(value: Any) -> Hashable:
    """Hashable form of a value, used to partition documents into groups."""
    if value is MISSING or value is None:
        return ("null",)
    if isinstance(value, bool):
        return ("bool", value)
    if is_number(value):
        return ("number", value)
    if isinstance(value, str):
        return ("string", value)
    if isinstance(value, dict):
        return ("object", tuple((key, freeze(item)) for key, item in value.items()))
    if isinstance(value, (list, tuple)):
        return ("array", tuple(freeze(item) for item in value))
    raise TypeError(f"Unsupported document value type: {type(value).__name__}")
