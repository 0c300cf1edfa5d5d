from __future__ import annotations

import os
from typing import BinaryIO, Callable, List, Optional, Tuple

from . import tree
from .constants import COPY_BUFFER_SIZE
from .descriptor import ArchiveDescriptor
from .pathutil import key_to_host_path
from .resolver import blob_path_for, resolve_descriptor_path


EXISTS_POLICIES = ("overwrite", "skip", "fail")


def copy_stream(src: BinaryIO, dst: BinaryIO, length: int) -> None:
    """Copy exactly ``length`` bytes from ``src`` to ``dst``."""
    remaining = length
    while remaining > 0:
        buf = src.read(min(COPY_BUFFER_SIZE, remaining))
        if not buf:
            raise EOFError(f"Blob ended with {remaining} byte(s) left to copy")
        dst.write(buf)
        remaining -= len(buf)


def read_descriptor(psb_path: str, filter=None) -> ArchiveDescriptor:
    """Decode and validate the descriptor at ``psb_path`` (no path resolution)."""
    with open(psb_path, "rb") as fh:
        root = tree.load(fh, filter=filter)
    arch = ArchiveDescriptor.from_tree(root)
    arch.check_signature()
    return arch


def open_archive(path: str, decompressor=None, filter=None) -> Tuple[str, str, ArchiveDescriptor]:
    """Resolve ``path`` and load its descriptor.

    Returns (descriptor_path, blob_path, descriptor).
    """
    psb_path = resolve_descriptor_path(path, decompressor)
    arch = read_descriptor(psb_path, filter)
    return psb_path, blob_path_for(psb_path), arch


def verify_archive(path: str, decompressor=None, filter=None) -> List[str]:
    """List layout problems of an archive; empty when it is well-formed."""
    _psb, blob_path, arch = open_archive(path, decompressor, filter)
    return arch.layout_problems(os.path.getsize(blob_path))


def unpack_files(
    psb_path: str,
    output_path: str,
    decompressor=None,
    filter=None,
    *,
    exists: str = "overwrite",
    on_entry: Optional[Callable[[str], None]] = None,
) -> int:
    """Unpack an archive into ``output_path``.

    Args:
        psb_path: The archive .psb; may also be the .bin or the .psb.m.
        output_path: Directory to write unpacked files into.
        decompressor: Needed when only the .psb.m exists.
        filter: Filter used when the descriptor was written.
        exists: What to do when a destination file exists: "overwrite",
            "skip" or "fail".
        on_entry: Called with each key before it is extracted.

    Returns:
        The number of files written.

    Raises:
        MissingDependency: Compressed or filtered descriptor without the capability.
        InvalidFormat: The descriptor is not an archive or its table does not fit the blob.
    """
    if exists not in EXISTS_POLICIES:
        raise ValueError(f"Unknown exists policy: {exists}")
    _psb, blob_path, arch = open_archive(psb_path, decompressor, filter)

    written = 0
    with open(blob_path, "rb") as fs:
        arch.check_bounds(os.fstat(fs.fileno()).st_size)
        for key, span in arch.file_table.items():
            out_path = key_to_host_path(output_path, key)
            if os.path.exists(out_path):
                if exists == "skip":
                    continue
                if exists == "fail":
                    raise FileExistsError(f"Destination exists: {out_path}")
            if on_entry is not None:
                on_entry(key)
            os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
            with open(out_path, "wb") as ofs:
                fs.seek(span.offset)
                copy_stream(fs, ofs, span.length)
            written += 1
    return written
