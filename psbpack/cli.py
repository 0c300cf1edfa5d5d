from __future__ import annotations

import argparse
import os
import sys
import time
from typing import List, Optional

from psbpack.errors import PsbPackError, FilterRequired
from psbpack.filters import PasswordFilter, XorFilter
from psbpack.mcompress import MArchiveCompressor
from psbpack.packer import build
from psbpack.unpacker import open_archive, unpack_files, verify_archive


def _make_filter(password: Optional[str] = None, xor_key: Optional[str] = None):
    """Pick the descriptor filter selected on the command line, if any."""
    if password and xor_key:
        raise ValueError("Use either a password or an XOR key, not both")
    if password:
        return PasswordFilter(password)
    if xor_key:
        return XorFilter(xor_key)
    return None


def cmd_build(
    input_dir: str,
    output: str,
    *,
    compress: bool = False,
    password: Optional[str] = None,
    xor_key: Optional[str] = None,
    quiet: bool = False,
) -> bool:
    """Build <output>.bin and <output>.psb from a directory.

    Args:
        input_dir: Directory whose files are packed (recursively).
        output: Output path without extension.
        compress: Compress the descriptor to <output>.psb.m.
        password: Encrypt the descriptor with this password.
        xor_key: Obfuscate the descriptor with this key.
        quiet: Only print the summary line.
    """
    flt = _make_filter(password, xor_key)
    compressor = MArchiveCompressor() if compress else None

    def _progress(key: str) -> None:
        if not quiet:
            print(f"Packing {key}")

    t0 = time.time()
    arch = build(input_dir, output, compressor, flt, on_entry=_progress)
    dt = max(0.000001, time.time() - t0)
    total = sum(span.length for span in arch.file_table.values())
    blob_size = os.path.getsize(output + ".bin")
    mib = total / (1024.0 * 1024.0)
    print(
        f"Done: {len(arch.file_table)} files; {mib:.2f} MiB in {dt:.1f}s; "
        f"blob {blob_size} bytes; descriptor {'compressed' if compress else 'plain'}"
    )
    return True


def cmd_unpack(
    archive: str,
    *,
    outdir: str = ".",
    password: Optional[str] = None,
    xor_key: Optional[str] = None,
    exists: str = "overwrite",
    quiet: bool = False,
) -> bool:
    """Unpack an archive (.psb, .bin or .psb.m) into a directory."""
    flt = _make_filter(password, xor_key)

    def _progress(key: str) -> None:
        if not quiet:
            print(f"Extracting {key}")

    t0 = time.time()
    count = unpack_files(archive, outdir, MArchiveCompressor(), flt, exists=exists, on_entry=_progress)
    dt = max(0.000001, time.time() - t0)
    print(f"Done: extracted {count} files to {outdir} in {dt:.1f}s")
    return True


def cmd_list(archive: str, *, password: Optional[str] = None, xor_key: Optional[str] = None) -> bool:
    """List archive entries as offset, length and path."""
    _psb, _blob, arch = open_archive(archive, MArchiveCompressor(), _make_filter(password, xor_key))
    for key, span in arch.file_table.items():
        print(f"{span.offset}\t{span.length}\t{key}")
    return True


def cmd_verify(archive: str, *, password: Optional[str] = None, xor_key: Optional[str] = None) -> bool:
    """Check the file table against the blob.

    Prints:
        "OK" when bounds, overlap and alignment checks pass, otherwise each
        problem followed by "FAIL".
    """
    problems = verify_archive(archive, MArchiveCompressor(), _make_filter(password, xor_key))
    for p in problems:
        print(f"  {p}")
    print("FAIL" if problems else "OK")
    return not problems


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="psbpack",
        description="Pack directories into .bin/.psb archives and unpack them",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    def _add_filter_args(p: argparse.ArgumentParser) -> None:
        grp = p.add_mutually_exclusive_group()
        grp.add_argument("--password", help="Descriptor password (encrypting filter)")
        grp.add_argument("--xor-key", help="Descriptor obfuscation key (XOR filter)")

    ap_build = sub.add_parser("build", help="Build archive from a directory")
    ap_build.add_argument("input_dir", help="Directory to pack")
    ap_build.add_argument("output", help="Output path without extension")
    ap_build.add_argument("--compress", "-c", action="store_true", help="Compress descriptor to .psb.m")
    ap_build.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    _add_filter_args(ap_build)

    ap_unpack = sub.add_parser("unpack", help="Unpack archive")
    ap_unpack.add_argument("archive", help="Archive path (.psb, .bin or .psb.m)")
    ap_unpack.add_argument("--outdir", default=".", help="Output directory")
    ap_unpack.add_argument(
        "--exists",
        choices=["overwrite", "skip", "fail"],
        default="overwrite",
        help="What to do if a destination file exists (default: overwrite)",
    )
    ap_unpack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    _add_filter_args(ap_unpack)

    ap_list = sub.add_parser("list", help="List archive contents")
    ap_list.add_argument("archive", help="Archive path")
    _add_filter_args(ap_list)

    ap_verify = sub.add_parser("verify", help="Check archive layout (bounds, overlap, alignment)")
    ap_verify.add_argument("archive", help="Archive path")
    _add_filter_args(ap_verify)

    args = ap.parse_args(argv)
    try:
        if args.cmd == "build":
            cmd_build(
                args.input_dir,
                args.output,
                compress=args.compress,
                password=args.password,
                xor_key=args.xor_key,
                quiet=args.quiet,
            )
        elif args.cmd == "unpack":
            cmd_unpack(
                args.archive,
                outdir=args.outdir,
                password=args.password,
                xor_key=args.xor_key,
                exists=args.exists,
                quiet=args.quiet,
            )
        elif args.cmd == "list":
            cmd_list(args.archive, password=args.password, xor_key=args.xor_key)
        elif args.cmd == "verify":
            ok = cmd_verify(args.archive, password=args.password, xor_key=args.xor_key)
            sys.exit(0 if ok else 1)
        else:
            raise RuntimeError("Unknown command")
    except FilterRequired:
        print("Error: Descriptor is filtered. Provide --password or --xor-key.", file=sys.stderr)
        sys.exit(2)
    except (PsbPackError, OSError, EOFError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
