"""
psbpack: pack many small files into a .bin blob plus a .psb descriptor.

- Blob: file contents back to back, each starting on a 2048-byte boundary.
- Descriptor: structured tree {id, version, file_info} mapping each relative
  path to its (offset, length) in the blob.
- Optional .psb.m compressed descriptor (zlib container) and descriptor
  filters (password encryption or keyed XOR obfuscation).

Programmatic API: psbpack.packer.build and psbpack.unpacker.unpack_files;
the CLI lives in psbpack.cli.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "descriptor",
    "tree",
    "resolver",
    "packer",
    "unpacker",
    "mcompress",
    "filters",
]
