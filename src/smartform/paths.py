"""Dotted and indexed path helpers (`address.city`, `items[0].name`)."""

import re
from collections.abc import Mapping
from typing import Any

_SEGMENT = re.compile(r"([^.\[\]]+)|\[(\d+)\]")

MISSING = object()


def split_path(path: str) -> list[str | int]:
    """Split a path into mapping keys and list indexes.

    >>> split_path("items[0].name")
    ['items', 0, 'name']
    """
    segments: list[str | int] = []
    for key, index in _SEGMENT.findall(path):
        segments.append(int(index) if index else key)
    return segments


def join_path(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name


def get_path(data: Any, path: str, default: Any = MISSING) -> Any:
    """Read a path from nested mappings and lists.

    A key equal to the full path ("address.city") wins over traversal, so
    both flat and nested form data work.

    Returns:
        The value, or default (the MISSING sentinel unless given) when any
        segment is absent
    """
    if isinstance(data, Mapping) and path in data:
        return data[path]

    current = data
    for segment in split_path(path):
        if isinstance(segment, int):
            if not isinstance(current, (list, tuple)) or not 0 <= segment < len(current):
                return default
            current = current[segment]
        elif isinstance(current, Mapping) and segment in current:
            current = current[segment]
        else:
            return default
    return current


def has_path(data: Any, path: str) -> bool:
    return get_path(data, path) is not MISSING


def set_path(data: dict[str, Any], path: str, value: Any) -> None:
    """Write a value at a path, creating intermediate mappings and list slots."""
    segments = split_path(path)
    current: Any = data
    for segment, following in zip(segments, segments[1:]):
        container: Any = [] if isinstance(following, int) else {}
        if isinstance(segment, int):
            while len(current) <= segment:
                current.append(None)
            if current[segment] is None:
                current[segment] = container
        elif not isinstance(current.get(segment), (dict, list)):
            current[segment] = container
        current = current[segment]

    last = segments[-1]
    if isinstance(last, int):
        while len(current) <= last:
            current.append(None)
    current[last] = value
