"""Minimal `$`-rooted path selection over JSON-like payloads.

Supports `$`, `$.a.b` and list indices as path segments (`$.items.0.id`).
"""

from __future__ import annotations

from typing import Any

ROOT = "$"


class PathNotFound(LookupError):
    pass


def parse_path(path: str) -> tuple[str, ...]:
    if not isinstance(path, str) or not path.startswith(ROOT):
        raise ValueError(f"Path must start with '$': {path!r}")
    if path == ROOT:
        return ()
    if not path.startswith(ROOT + "."):
        raise ValueError(f"Malformed path: {path!r}")
    parts = tuple(path[2:].split("."))
    if any(not p for p in parts):
        raise ValueError(f"Malformed path: {path!r}")
    return parts


def select(payload: Any, path: str) -> Any:
    """Return the value at `path`, raising PathNotFound when it is absent."""

    current = payload
    for part in parse_path(path):
        if isinstance(current, dict):
            if part not in current:
                raise PathNotFound(f"Cannot resolve {part!r} in path {path!r}")
            current = current[part]
        elif isinstance(current, list):
            try:
                current = current[int(part)]
            except (ValueError, IndexError) as e:
                raise PathNotFound(f"Cannot resolve {part!r} in path {path!r}") from e
        else:
            raise PathNotFound(f"Cannot resolve {part!r} in path {path!r}")
    return current


def is_present(payload: Any, path: str) -> bool:
    try:
        select(payload, path)
    except PathNotFound:
        return False
    return True
