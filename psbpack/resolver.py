from __future__ import annotations

import os

from .constants import BLOB_EXT, DESCRIPTOR_EXT, COMPRESSED_SUFFIX
from .errors import MissingDependency


def blob_path_for(descriptor_path: str) -> str:
    return os.path.splitext(descriptor_path)[0] + BLOB_EXT


def resolve_descriptor_path(path: str, decompressor=None) -> str:
    """Find the descriptor file for ``path`` (.psb, .bin or .psb.m).

    A ``.bin`` path is redirected to its ``.psb``. When no ``.psb`` exists the
    compressed variant is tried, which needs ``decompressor`` (anything with
    ``decompress_file(path, in_place)``); it is decompressed in place and the
    plain descriptor path is returned.
    """
    root, ext = os.path.splitext(path)
    if ext.lower() == BLOB_EXT:
        path = root + DESCRIPTOR_EXT

    if not os.path.exists(path):
        path += COMPRESSED_SUFFIX

    if path.lower().endswith(COMPRESSED_SUFFIX):
        if decompressor is None:
            raise MissingDependency(f"{path} is compressed; a decompressor is required")
        decompressor.decompress_file(path, in_place=True)
        path = path[: -len(COMPRESSED_SUFFIX)]

    return path
