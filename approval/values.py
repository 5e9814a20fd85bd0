"""
Value Trees
Path resolution over schema-less transaction descriptors.

A value tree is whatever a JSON decoder produces: nested dicts and lists
with string leaves (numbers, bools and null may appear but are never
comparable). Paths are dotted, e.g. ``"nested.data.0.address"``; list
segments are integers and negative indices address from the end.
"""

from __future__ import annotations

import re
from typing import Any, Union

Value = Union[str, list["Value"], dict[str, "Value"]]


class _NotFound:
    """Sentinel for a path that does not resolve. Distinct from JSON null."""

    _instance: "_NotFound | None" = None

    def __new__(cls) -> "_NotFound":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()


_INTEGER = re.compile(r"[+-]?[0-9]+")


def parse_int(text: str) -> int | None:
    """Plain ASCII integer literal; no whitespace, separators or other digits."""
    if not _INTEGER.fullmatch(text):
        return None
    return int(text)


def resolve_path(tree: Any, path: str) -> Any:
    """Walk ``path`` through ``tree``. Returns the node or ``NOT_FOUND``."""
    current = tree
    for segment in path.split("."):
        if isinstance(current, dict):
            if segment not in current:
                return NOT_FOUND
            current = current[segment]
        elif isinstance(current, list):
            index = parse_int(segment)
            if index is None or index >= len(current):
                return NOT_FOUND
            if index < 0:
                index += len(current)
                if index < 0:
                    return NOT_FOUND
            current = current[index]
        else:
            return NOT_FOUND
    return current
