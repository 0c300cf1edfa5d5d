from __future__ import annotations

import os
import struct
import tempfile
import unittest
from pathlib import Path

from psbpack import tree
from psbpack.errors import (
    CompressedFormatError,
    DescriptorDecodeError,
    FilterError,
    FilterRequired,
    InvalidFormat,
    MissingDependency,
)
from psbpack.filters import PasswordFilter, XorFilter
from psbpack.mcompress import MArchiveCompressor


def _raw_container(body: bytes, version: int = 3, flags: int = 0) -> bytes:
    return b"PSB\x00" + struct.pack("<HH", version, flags) + body


class TreeCodecTests(unittest.TestCase):
    def test_values_survive(self):
        root = {
            "id": "archive",
            "version": 1.0,
            "neg": -123456789,
            "big": (1 << 64) - 1,
            "flags": [True, False, None],
            "blob": b"\x00\x01\xff",
            "text": "café",
            "nested": {"z": [1, [2, {"y": 3.5}]], "a": {}},
        }
        decoded = tree.loads(tree.dumps(root))
        self.assertEqual(decoded, root)
        self.assertEqual(list(decoded), list(root))
        self.assertEqual(list(decoded["nested"]), ["z", "a"])
        self.assertIsInstance(decoded["version"], float)

    def test_tuple_encodes_as_list(self):
        self.assertEqual(tree.loads(tree.dumps({"a": (1, 2)})), {"a": [1, 2]})

    def test_header(self):
        data = tree.dumps({}, version=2)
        self.assertEqual(data[:4], b"PSB\x00")
        self.assertEqual(struct.unpack_from("<HH", data, 4), (2, 0))

    def test_encode_errors(self):
        with self.assertRaises(TypeError):
            tree.dumps({1: "x"})
        with self.assertRaises(TypeError):
            tree.dumps({"x": object()})
        with self.assertRaises(ValueError):
            tree.dumps({}, version=4)

    def test_decode_errors(self):
        good = tree.dumps({"a": "hello"})
        cases = {
            "short": b"PSB",
            "magic": b"XXX\x00" + good[4:],
            "version": _raw_container(good[8:], version=9),
            "flags": _raw_container(good[8:], flags=0x80),
            "truncated": good[:-2],
            "trailing": good + b"\x00",
            "unknown tag": _raw_container(bytes([99])),
            "empty body": _raw_container(b""),
            "duplicate key": _raw_container(bytes([8, 2, 1]) + b"a" + bytes([0, 1]) + b"a" + bytes([0])),
            "bad utf8": _raw_container(bytes([5, 1, 0xFF])),
            "list count": _raw_container(bytes([7, 50, 0])),
        }
        for name, data in cases.items():
            with self.subTest(case=name):
                with self.assertRaises(DescriptorDecodeError):
                    tree.loads(data)

    def test_decode_error_is_invalid_format(self):
        with self.assertRaises(InvalidFormat):
            tree.loads(b"garbage!")

    def test_filtered_body(self):
        data = tree.dumps({"k": "v"}, filter=XorFilter("key"))
        self.assertEqual(struct.unpack_from("<HH", data, 4), (3, 1))
        with self.assertRaises(MissingDependency):
            tree.loads(data)
        with self.assertRaises(FilterRequired):
            tree.loads(data)
        self.assertEqual(tree.loads(data, filter=XorFilter("key")), {"k": "v"})

    def test_stream_helpers(self):
        with tempfile.TemporaryDirectory() as tmp:
            p = Path(tmp) / "d.psb"
            with open(p, "wb") as fh:
                tree.dump({"n": 1}, fh)
            with open(p, "rb") as fh:
                self.assertEqual(tree.load(fh), {"n": 1})


class FilterTests(unittest.TestCase):
    def test_xor_filter(self):
        data = b"descriptor body " * 20
        enc = XorFilter(b"k").encode(data)
        self.assertNotEqual(enc, data)
        self.assertEqual(len(enc), len(data))
        self.assertEqual(XorFilter("k").decode(enc), data)
        self.assertNotEqual(XorFilter("other").decode(enc), data)
        self.assertEqual(XorFilter("k").encode(b""), b"")
        with self.assertRaises(ValueError):
            XorFilter("")

    def test_password_filter(self):
        f = PasswordFilter("pw", time_cost=1, memory_cost_kib=64, parallelism=1)
        data = os.urandom(100)
        enc = f.encode(data)
        self.assertEqual(enc[:4], b"PWF\x01")
        self.assertNotEqual(f.encode(data), enc)
        self.assertEqual(f.decode(enc), data)
        with self.assertRaises(FilterError):
            PasswordFilter("wrong").decode(enc)
        tampered = bytearray(enc)
        tampered[-1] ^= 0xFF
        with self.assertRaises(FilterError):
            f.decode(bytes(tampered))
        with self.assertRaises(FilterError):
            f.decode(b"short")
        with self.assertRaises(FilterError):
            f.decode(b"NOPE" + enc[4:])
        with self.assertRaises(ValueError):
            PasswordFilter("")

    def test_password_filter_rejects_huge_parameters(self):
        f = PasswordFilter("pw", time_cost=1, memory_cost_kib=64, parallelism=1)
        enc = bytearray(f.encode(b"x"))
        # time_cost field follows magic[4] + salt[16]
        struct.pack_into("<I", enc, 20, 1000)
        with self.assertRaises(FilterError):
            f.decode(bytes(enc))


class MArchiveCompressorTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def test_bytes(self):
        c = MArchiveCompressor()
        data = b"abc" * 1000
        packed = c.compress(data)
        self.assertEqual(packed[:4], b"mdf\x00")
        self.assertEqual(struct.unpack_from("<I", packed, 4)[0], len(data))
        self.assertLess(len(packed), len(data))
        self.assertEqual(c.decompress(packed), data)

    def test_bad_inputs(self):
        c = MArchiveCompressor()
        packed = c.compress(b"hello world")
        wrong_len = packed[:4] + struct.pack("<I", 5) + packed[8:]
        longer_len = packed[:4] + struct.pack("<I", 50) + packed[8:]
        for name, data in {
            "short": b"mdf",
            "magic": b"zzz\x00" + packed[4:],
            "length small": wrong_len,
            "length large": longer_len,
            "zlib": packed[:8] + b"not zlib at all",
            "truncated": packed[:-3],
        }.items():
            with self.subTest(case=name):
                with self.assertRaises(CompressedFormatError):
                    c.decompress(data)

    def test_files_in_place(self):
        def scenario(tmp: Path):
            p = tmp / "x.psb"
            p.write_bytes(b"payload" * 10)
            out = MArchiveCompressor().compress_file(str(p))
            self.assertEqual(out, str(p) + ".m")
            self.assertFalse(p.exists())
            back = MArchiveCompressor().decompress_file(out)
            self.assertEqual(back, str(p))
            self.assertEqual(p.read_bytes(), b"payload" * 10)
            self.assertFalse(Path(out).exists())
            self.assertEqual([f.name for f in tmp.iterdir()], ["x.psb"])

        self.run_with_tmpdir(scenario)

    def test_files_kept(self):
        def scenario(tmp: Path):
            p = tmp / "x.psb"
            p.write_bytes(b"payload")
            out = MArchiveCompressor(keep_source=True).compress_file(str(p))
            self.assertTrue(p.exists())
            p.unlink()
            MArchiveCompressor().decompress_file(out, in_place=False)
            self.assertTrue(Path(out).exists())
            self.assertEqual(p.read_bytes(), b"payload")
            with self.assertRaises(ValueError):
                MArchiveCompressor().decompress_file(str(p))

        self.run_with_tmpdir(scenario)

    def test_bad_file_leaves_no_temp(self):
        def scenario(tmp: Path):
            m = tmp / "x.psb.m"
            m.write_bytes(b"garbage")
            with self.assertRaises(CompressedFormatError):
                MArchiveCompressor().decompress_file(str(m))
            self.assertEqual([f.name for f in tmp.iterdir()], ["x.psb.m"])

        self.run_with_tmpdir(scenario)


if __name__ == "__main__":
    unittest.main()
