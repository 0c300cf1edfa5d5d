from __future__ import annotations

import os

from .errors import InvalidFormat


def to_archive_key(rel_path: str) -> str:
    """Convert a host relative path to a stored key (forward slashes)."""
    key = rel_path.replace(os.sep, "/")
    if os.altsep:
        key = key.replace(os.altsep, "/")
    return key.lstrip("/")


def check_key(key: str) -> None:
    """Reject keys that would escape the output directory when extracted.

    Rules:
    - Must be non-empty
    - No leading slash (nor backslash or drive letter on Windows)
    - No '..' segments
    """
    if not key:
        raise InvalidFormat("Empty path in file table")
    # Backslashes and drive letters only mean something on Windows hosts
    windows = "\\" in (os.sep, os.altsep)
    parts = (key.replace("\\", "/") if windows else key).split("/")
    if key.startswith("/") or (windows and (key.startswith("\\") or (len(parts[0]) == 2 and parts[0][1] == ":"))):
        raise InvalidFormat(f"Absolute path in file table: {key!r}")
    if any(p == ".." for p in parts):
        raise InvalidFormat(f"Path may not contain '..': {key!r}")
    if not [p for p in parts if p not in ("", ".")]:
        raise InvalidFormat(f"Path has no file name: {key!r}")


def key_to_host_path(root: str, key: str) -> str:
    return os.path.join(root, *[p for p in key.split("/") if p not in ("", ".")])
