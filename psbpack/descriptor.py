from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple

from .constants import (
    ALIGNMENT,
    ARCHIVE_OBJECT_TYPE,
    ARCHIVE_VERSION,
    KEY_OBJECT_TYPE,
    KEY_VERSION,
    KEY_FILE_TABLE,
    U64_MAX,
)
from .errors import InvalidFormat
from .pathutil import check_key


class FileSpan(NamedTuple):
    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


def _is_u64(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and 0 <= v <= U64_MAX


@dataclass
class ArchiveDescriptor:
    """Typed archive descriptor: signature plus the name -> (offset, length) table."""

    object_type: str = ARCHIVE_OBJECT_TYPE
    version: float = ARCHIVE_VERSION
    file_table: Dict[str, FileSpan] = field(default_factory=dict)

    def add(self, key: str, offset: int, length: int) -> FileSpan:
        if key in self.file_table:
            raise ValueError(f"Duplicate path in file table: {key}")
        if not (_is_u64(offset) and _is_u64(length)):
            raise ValueError(f"Offset/length out of range for {key}: {offset}, {length}")
        span = FileSpan(offset, length)
        self.file_table[key] = span
        return span

    def to_tree(self) -> Dict[str, Any]:
        return {
            KEY_OBJECT_TYPE: self.object_type,
            KEY_VERSION: float(self.version),
            KEY_FILE_TABLE: {k: [s.offset, s.length] for k, s in self.file_table.items()},
        }

    @classmethod
    def from_tree(cls, tree: Any) -> "ArchiveDescriptor":
        """Build a descriptor from a decoded tree, validating its shape.

        Only the structure is checked here; see :meth:`check_signature` for
        the archive type/version test.
        """
        if not isinstance(tree, dict):
            raise InvalidFormat("Descriptor root is not a dictionary")
        object_type = tree.get(KEY_OBJECT_TYPE)
        if not isinstance(object_type, str):
            raise InvalidFormat("Descriptor has no object type")
        version = tree.get(KEY_VERSION)
        if isinstance(version, bool) or not isinstance(version, (int, float)):
            raise InvalidFormat("Descriptor has no numeric version")
        if KEY_FILE_TABLE not in tree:
            raise InvalidFormat("Descriptor has no file table")
        raw_table = tree[KEY_FILE_TABLE]
        if not isinstance(raw_table, dict):
            raise InvalidFormat("Descriptor file table is not a dictionary")
        table: Dict[str, FileSpan] = {}
        for key, value in raw_table.items():
            check_key(key)
            if not (isinstance(value, list) and len(value) == 2 and _is_u64(value[0]) and _is_u64(value[1])):
                raise InvalidFormat(f"Bad offset/length pair for {key!r}")
            table[key] = FileSpan(value[0], value[1])
        return cls(object_type=object_type, version=version, file_table=table)

    def check_signature(self) -> None:
        # Exact comparison; 1 and 1.0 are equal
        if self.object_type != ARCHIVE_OBJECT_TYPE or self.version != ARCHIVE_VERSION:
            raise InvalidFormat("PSB file is not an archive.")

    def check_bounds(self, blob_size: int) -> None:
        for key, span in self.file_table.items():
            if span.end > blob_size:
                raise InvalidFormat(
                    f"Entry {key} (offset {span.offset}, length {span.length}) exceeds blob size {blob_size}"
                )

    def layout_problems(self, blob_size: int, alignment: int = ALIGNMENT) -> List[str]:
        """Describe every layout invariant the table breaks against ``blob_size``.

        Checks bounds, pairwise overlap of non-empty ranges, entry alignment
        and whether the blob itself ends on an alignment boundary.
        """
        problems: List[str] = []
        for key, span in self.file_table.items():
            if span.end > blob_size:
                problems.append(f"{key}: range {span.offset}..{span.end} exceeds blob size {blob_size}")
            if alignment and span.offset % alignment:
                problems.append(f"{key}: offset {span.offset} is not a multiple of {alignment}")
        ordered = sorted(
            ((span, key) for key, span in self.file_table.items() if span.length),
            key=lambda item: (item[0].offset, item[1]),
        )
        reach_end, reach_key = 0, None
        for span, key in ordered:
            if reach_key is not None and span.offset < reach_end:
                problems.append(f"{key}: overlaps {reach_key}")
            if span.end > reach_end:
                reach_end, reach_key = span.end, key
        if alignment and blob_size % alignment:
            problems.append(f"blob size {blob_size} is not a multiple of {alignment}")
        return problems
