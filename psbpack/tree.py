from __future__ import annotations

"""
Structured tree encoder/decoder for archive descriptors (.psb).

Container
- magic "PSB\\0" (4 bytes)
- version u16 LE (structural format version)
- flags u16 LE (bit 0: body passed through a filter)
- body: one encoded value (the root), filtered when flag bit 0 is set

Value encoding: tag byte || payload
- 0: null
- 1: false
- 2: true
- 3: int (zigzag LEB128 varint)
- 4: float (IEEE 754 double, little endian)
- 5: string (varint length || UTF-8)
- 6: bytes (varint length || raw)
- 7: list (varint count || values)
- 8: dict (varint count || (varint key length || UTF-8 key || value) pairs)

Dict key order is preserved on both sides. The decoder is strict: unknown
tags, truncated payloads, trailing bytes and duplicate dict keys are errors.
"""

import struct
from typing import Any, BinaryIO, List, Tuple

from .constants import (
    TREE_MAGIC,
    TREE_VERSION_MIN,
    TREE_VERSION_MAX,
    TREE_WRITE_VERSION,
    TREE_FLAG_FILTERED,
)
from .errors import DescriptorDecodeError, FilterRequired


_HEADER = struct.Struct("<4sHH")
_F64 = struct.Struct("<d")

T_NULL = 0
T_FALSE = 1
T_TRUE = 2
T_INT = 3
T_FLOAT = 4
T_STR = 5
T_BYTES = 6
T_LIST = 7
T_DICT = 8

MAX_DEPTH = 64


def _varint_encode(n: int) -> bytes:
    if n < 0:
        raise ValueError("varint: negative not supported")
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(b | 0x80)
        else:
            out.append(b)
            break
    return bytes(out)


def _varint_decode(data: bytes, pos: int) -> Tuple[int, int]:
    shift = 0
    result = 0
    while True:
        if pos >= len(data):
            raise DescriptorDecodeError("varint: truncated")
        b = data[pos]
        pos += 1
        result |= (b & 0x7F) << shift
        if not (b & 0x80):
            return result, pos
        shift += 7
        if shift > 70:
            raise DescriptorDecodeError("varint: too large")


def _zigzag_encode(n: int) -> int:
    return n * 2 if n >= 0 else -n * 2 - 1


def _zigzag_decode(z: int) -> int:
    return z >> 1 if not (z & 1) else -((z + 1) >> 1)


def _encode_value(value: Any, out: bytearray, depth: int = 0) -> None:
    if depth > MAX_DEPTH:
        raise ValueError("tree nesting too deep")
    # bool before int: bool is an int subclass
    if value is None:
        out.append(T_NULL)
    elif value is True:
        out.append(T_TRUE)
    elif value is False:
        out.append(T_FALSE)
    elif isinstance(value, int):
        out.append(T_INT)
        out += _varint_encode(_zigzag_encode(value))
    elif isinstance(value, float):
        out.append(T_FLOAT)
        out += _F64.pack(value)
    elif isinstance(value, str):
        raw = value.encode("utf-8")
        out.append(T_STR)
        out += _varint_encode(len(raw))
        out += raw
    elif isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        out.append(T_BYTES)
        out += _varint_encode(len(raw))
        out += raw
    elif isinstance(value, (list, tuple)):
        out.append(T_LIST)
        out += _varint_encode(len(value))
        for item in value:
            _encode_value(item, out, depth + 1)
    elif isinstance(value, dict):
        out.append(T_DICT)
        out += _varint_encode(len(value))
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"tree dict keys must be str, not {type(key).__name__}")
            raw = key.encode("utf-8")
            out += _varint_encode(len(raw))
            out += raw
            _encode_value(item, out, depth + 1)
    else:
        raise TypeError(f"cannot encode {type(value).__name__} in a descriptor tree")


def _take(data: bytes, pos: int, n: int) -> Tuple[bytes, int]:
    if n < 0 or pos + n > len(data):
        raise DescriptorDecodeError("tree: payload length out of range")
    return data[pos : pos + n], pos + n


def _decode_str(data: bytes, pos: int) -> Tuple[str, int]:
    ln, pos = _varint_decode(data, pos)
    raw, pos = _take(data, pos, ln)
    try:
        return raw.decode("utf-8"), pos
    except UnicodeDecodeError as exc:
        raise DescriptorDecodeError(f"tree: invalid UTF-8 string: {exc}") from exc


def _decode_value(data: bytes, pos: int, depth: int = 0) -> Tuple[Any, int]:
    if depth > MAX_DEPTH:
        raise DescriptorDecodeError("tree: nesting too deep")
    if pos >= len(data):
        raise DescriptorDecodeError("tree: truncated value")
    tag = data[pos]
    pos += 1
    if tag == T_NULL:
        return None, pos
    if tag == T_FALSE:
        return False, pos
    if tag == T_TRUE:
        return True, pos
    if tag == T_INT:
        z, pos = _varint_decode(data, pos)
        return _zigzag_decode(z), pos
    if tag == T_FLOAT:
        raw, pos = _take(data, pos, _F64.size)
        return _F64.unpack(raw)[0], pos
    if tag == T_STR:
        return _decode_str(data, pos)
    if tag == T_BYTES:
        ln, pos = _varint_decode(data, pos)
        return _take(data, pos, ln)
    if tag == T_LIST:
        count, pos = _varint_decode(data, pos)
        # every value needs at least its tag byte
        if count > len(data) - pos:
            raise DescriptorDecodeError("tree: list count out of range")
        items: List[Any] = []
        for _ in range(count):
            item, pos = _decode_value(data, pos, depth + 1)
            items.append(item)
        return items, pos
    if tag == T_DICT:
        count, pos = _varint_decode(data, pos)
        if count > len(data) - pos:
            raise DescriptorDecodeError("tree: dict count out of range")
        obj = {}
        for _ in range(count):
            key, pos = _decode_str(data, pos)
            if key in obj:
                raise DescriptorDecodeError(f"tree: duplicate key {key!r}")
            obj[key], pos = _decode_value(data, pos, depth + 1)
        return obj, pos
    raise DescriptorDecodeError(f"tree: unknown value tag {tag}")


def dumps(tree: Any, version: int = TREE_WRITE_VERSION, filter=None) -> bytes:
    """Encode ``tree`` into a descriptor container.

    ``filter`` is any object with ``encode(bytes) -> bytes``; it is applied to
    the body only, and the header records that it was used.
    """
    if not (TREE_VERSION_MIN <= version <= TREE_VERSION_MAX):
        raise ValueError(f"unsupported tree format version: {version}")
    body = bytearray()
    _encode_value(tree, body)
    flags = 0
    payload = bytes(body)
    if filter is not None:
        payload = filter.encode(payload)
        flags |= TREE_FLAG_FILTERED
    return _HEADER.pack(TREE_MAGIC, version, flags) + payload


def loads(data: bytes, filter=None) -> Any:
    """Decode a descriptor container produced by :func:`dumps`."""
    if len(data) < _HEADER.size:
        raise DescriptorDecodeError("descriptor too short")
    magic, version, flags = _HEADER.unpack_from(data, 0)
    if magic != TREE_MAGIC:
        raise DescriptorDecodeError("bad descriptor magic")
    if not (TREE_VERSION_MIN <= version <= TREE_VERSION_MAX):
        raise DescriptorDecodeError(f"unsupported tree format version: {version}")
    if flags & ~TREE_FLAG_FILTERED:
        raise DescriptorDecodeError(f"unknown descriptor flags: {flags:#x}")
    body = data[_HEADER.size :]
    if flags & TREE_FLAG_FILTERED:
        if filter is None:
            raise FilterRequired("descriptor is filtered; a filter is required to decode it")
        body = filter.decode(body)
    root, pos = _decode_value(body, 0)
    if pos != len(body):
        raise DescriptorDecodeError("trailing data after descriptor root")
    return root


def dump(tree: Any, fh: BinaryIO, version: int = TREE_WRITE_VERSION, filter=None) -> None:
    fh.write(dumps(tree, version=version, filter=filter))


def load(fh: BinaryIO, filter=None) -> Any:
    return loads(fh.read(), filter=filter)

