from __future__ import annotations

import os
import shutil
from typing import Callable, List, Optional, Tuple

from . import tree
from .constants import (
    ALIGNMENT,
    ARCHIVE_OBJECT_TYPE,
    ARCHIVE_VERSION,
    BLOB_EXT,
    COMPRESSED_SUFFIX,
    COPY_BUFFER_SIZE,
    DESCRIPTOR_EXT,
    TREE_WRITE_VERSION,
)
from .descriptor import ArchiveDescriptor
from .errors import MissingDependency
from .pathutil import to_archive_key


def align_up(n: int, alignment: int = ALIGNMENT) -> int:
    return (n + alignment - 1) // alignment * alignment


def _raise(exc: OSError) -> None:
    raise exc


def collect_files(folder_path: str, exclude: Tuple[str, ...] = ()) -> List[Tuple[str, str]]:
    """Return (key, fs_path) for every regular file under ``folder_path``, sorted by key."""
    skip = {os.path.normcase(os.path.abspath(p)) for p in exclude}
    files: List[Tuple[str, str]] = []
    for root, _dirs, filenames in os.walk(folder_path, onerror=_raise):
        for fn in filenames:
            full = os.path.join(root, fn)
            if not os.path.isfile(full):
                continue
            if os.path.normcase(os.path.abspath(full)) in skip:
                continue
            key = to_archive_key(os.path.relpath(full, start=folder_path))
            files.append((key, full))
    files.sort(key=lambda item: item[0])
    return files


def build(
    folder_path: str,
    output_path: str,
    compressor=None,
    filter=None,
    *,
    compress: Optional[bool] = None,
    on_entry: Optional[Callable[[str], None]] = None,
) -> ArchiveDescriptor:
    """Build an archive from a directory.

    Writes ``output_path + '.bin'`` and ``output_path + '.psb'``. Each file
    starts on a 2048-byte boundary; the blob is zero-padded after every file.

    Args:
        folder_path: The directory to make an archive from.
        output_path: Path of the resulting archive, without extension.
        compressor: Compresses the written .psb (anything with ``compress_file(path)``).
        filter: Filter used to encode the descriptor.
        compress: Force (True) or suppress (False) compression. By default the
            descriptor is compressed whenever a compressor is given.
        on_entry: Called with each key before it is packed.

    Returns:
        The descriptor that was written.
    """
    do_compress = compressor is not None if compress is None else compress
    if do_compress and compressor is None:
        raise MissingDependency("Descriptor compression requested but no compressor given")
    folder_path = os.path.abspath(folder_path)
    if not os.path.isdir(folder_path):
        raise NotADirectoryError(f"Not a directory: {folder_path}")

    blob_path = output_path + BLOB_EXT
    psb_path = output_path + DESCRIPTOR_EXT
    files = collect_files(folder_path, exclude=(blob_path, psb_path, psb_path + COMPRESSED_SUFFIX))

    archive = ArchiveDescriptor()
    with open(blob_path, "wb") as pack_stream, open(psb_path, "wb") as psb_stream:
        for key, full in files:
            if on_entry is not None:
                on_entry(key)
            offset = pack_stream.tell()
            with open(full, "rb") as fs:
                shutil.copyfileobj(fs, pack_stream, COPY_BUFFER_SIZE)
            archive.add(key, offset, pack_stream.tell() - offset)
            pos = pack_stream.tell()
            pack_stream.write(b"\x00" * (align_up(pos) - pos))

        archive.object_type = ARCHIVE_OBJECT_TYPE
        archive.version = ARCHIVE_VERSION
        tree.dump(archive.to_tree(), psb_stream, version=TREE_WRITE_VERSION, filter=filter)

    if do_compress:
        compressor.compress_file(psb_path)
    return archive
