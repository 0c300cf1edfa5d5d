from __future__ import annotations

import os
import struct
import tempfile
import zlib
from typing import Optional

from .constants import COMPRESSED_SUFFIX, MDF_MAGIC, MDF_DEFAULT_LEVEL
from .errors import CompressedFormatError


_MDF_HEADER = struct.Struct("<4sI")


def _write_replace(target: str, data: bytes) -> None:
    """Write ``data`` next to ``target`` and move it into place with os.replace."""
    target_dir = os.path.dirname(os.path.abspath(target))
    fd, tmp = tempfile.mkstemp(prefix=".psbpack-", suffix=".tmp", dir=target_dir)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp, target)
    except BaseException:
        try:
            os.remove(tmp)
        except FileNotFoundError:
            pass
        raise


def strip_compressed_suffix(path: str) -> str:
    if not path.lower().endswith(COMPRESSED_SUFFIX):
        raise ValueError(f"Not a compressed descriptor path: {path}")
    return path[: -len(COMPRESSED_SUFFIX)]


class MArchiveCompressor:
    """zlib container for descriptor files (``.m``).

    Layout: magic "mdf\\0" || u32 LE uncompressed length || zlib stream.
    """

    def __init__(self, level: Optional[int] = None, keep_source: bool = False):
        self.level = MDF_DEFAULT_LEVEL if level is None else level
        self.keep_source = keep_source

    def compress(self, data: bytes) -> bytes:
        if len(data) > 0xFFFFFFFF:
            raise ValueError("Data too large for .m container")
        return _MDF_HEADER.pack(MDF_MAGIC, len(data)) + zlib.compress(data, self.level)

    def decompress(self, data: bytes) -> bytes:
        if len(data) < _MDF_HEADER.size:
            raise CompressedFormatError("Compressed descriptor too short")
        magic, raw_len = _MDF_HEADER.unpack_from(data, 0)
        if magic != MDF_MAGIC:
            raise CompressedFormatError("Bad .m magic")
        d = zlib.decompressobj()
        try:
            # Bound output by the declared length (+1 to detect overruns)
            raw = d.decompress(data[_MDF_HEADER.size :], raw_len + 1)
        except zlib.error as exc:
            raise CompressedFormatError(f"zlib decompression failed: {exc}") from exc
        if len(raw) != raw_len or not d.eof:
            raise CompressedFormatError("Compressed descriptor length mismatch")
        return raw

    def compress_file(self, path: str) -> str:
        """Compress ``path`` to ``path + '.m'``; the source is removed unless keep_source is set."""
        with open(path, "rb") as fh:
            data = fh.read()
        out_path = path + COMPRESSED_SUFFIX
        _write_replace(out_path, self.compress(data))
        if not self.keep_source:
            os.remove(path)
        return out_path

    def decompress_file(self, path: str, in_place: bool = True) -> str:
        """Decompress ``path`` (ending in '.m') to the path without the suffix.

        With ``in_place`` the compressed file is replaced by its decompressed
        contents; otherwise it is left alongside. Returns the decompressed path.
        """
        target = strip_compressed_suffix(path)
        with open(path, "rb") as fh:
            data = fh.read()
        _write_replace(target, self.decompress(data))
        if in_place:
            os.remove(path)
        return target
