from __future__ import annotations

"""Descriptor filters: byte transforms applied to the encoded descriptor body.

A filter is any object with ``encode(data) -> bytes`` and
``decode(data) -> bytes``. The tree codec passes the body through it
unexamined.
"""

import hashlib
import os
import struct
from dataclasses import dataclass
from typing import Union

from argon2.low_level import Type as ArgonType, hash_secret_raw
from Cryptodome.Cipher import ChaCha20_Poly1305

from .errors import FilterError


NONCE_SIZE = 24
TAG_SIZE = 16
KEY_SIZE = 32
SALT_SIZE = 16

PASSWORD_FILTER_MAGIC = b"PWF\x01"

# Argon2id defaults; stored with every filtered descriptor
ARGON_TIME_COST = 3
ARGON_MEMORY_COST_KIB = 64 * 1024  # 64 MiB
ARGON_PARALLELISM = 4

# Upper bounds accepted when reading parameters back from a file
_MAX_TIME_COST = 64
_MAX_MEMORY_COST_KIB = 4 * 1024 * 1024
_MAX_PARALLELISM = 64

_PW_HEADER = struct.Struct(f"<4s{SALT_SIZE}sIII")


@dataclass
class KdfParams:
    salt: bytes
    time_cost: int
    memory_cost_kib: int
    parallelism: int


def derive_key(password: str, params: KdfParams) -> bytes:
    return hash_secret_raw(
        password.encode("utf-8"),
        params.salt,
        time_cost=params.time_cost,
        memory_cost=params.memory_cost_kib,
        parallelism=params.parallelism,
        hash_len=KEY_SIZE,
        type=ArgonType.ID,
    )


class PasswordFilter:
    """Authenticated encryption of the descriptor body.

    Output layout: magic[4] || salt[16] || time u32 || memory_kib u32 ||
    parallelism u32 || nonce[24] || ciphertext || tag[16]. The header is bound
    as associated data, so tampering with the parameters fails authentication.
    """

    def __init__(
        self,
        password: str,
        *,
        time_cost: int = ARGON_TIME_COST,
        memory_cost_kib: int = ARGON_MEMORY_COST_KIB,
        parallelism: int = ARGON_PARALLELISM,
    ):
        if not password:
            raise ValueError("password must not be empty")
        self.password = password
        self.time_cost = time_cost
        self.memory_cost_kib = memory_cost_kib
        self.parallelism = parallelism

    def encode(self, data: bytes) -> bytes:
        params = KdfParams(
            salt=os.urandom(SALT_SIZE),
            time_cost=self.time_cost,
            memory_cost_kib=self.memory_cost_kib,
            parallelism=self.parallelism,
        )
        key = derive_key(self.password, params)
        header = _PW_HEADER.pack(
            PASSWORD_FILTER_MAGIC, params.salt, params.time_cost, params.memory_cost_kib, params.parallelism
        )
        nonce = os.urandom(NONCE_SIZE)
        cipher = ChaCha20_Poly1305.new(key=key, nonce=nonce)
        cipher.update(header)
        ciphertext, tag = cipher.encrypt_and_digest(data)
        return header + nonce + ciphertext + tag

    def decode(self, data: bytes) -> bytes:
        if len(data) < _PW_HEADER.size + NONCE_SIZE + TAG_SIZE:
            raise FilterError("Encrypted descriptor too short")
        header = data[: _PW_HEADER.size]
        magic, salt, time_cost, memory_cost_kib, parallelism = _PW_HEADER.unpack(header)
        if magic != PASSWORD_FILTER_MAGIC:
            raise FilterError("Descriptor was not written with a password filter")
        if not (
            1 <= time_cost <= _MAX_TIME_COST
            and 1 <= parallelism <= _MAX_PARALLELISM
            and 8 * parallelism <= memory_cost_kib <= _MAX_MEMORY_COST_KIB
        ):
            raise FilterError("Unsupported Argon2 parameters in descriptor")
        key = derive_key(self.password, KdfParams(salt, time_cost, memory_cost_kib, parallelism))
        body = data[_PW_HEADER.size :]
        nonce = body[:NONCE_SIZE]
        tag = body[-TAG_SIZE:]
        ciphertext = body[NONCE_SIZE:-TAG_SIZE]
        cipher = ChaCha20_Poly1305.new(key=key, nonce=nonce)
        cipher.update(header)
        try:
            return cipher.decrypt_and_verify(ciphertext, tag)
        except ValueError as exc:
            raise FilterError("Descriptor authentication failed (wrong password or corrupted data)") from exc


class XorFilter:
    """Keyed XOR obfuscation with a BLAKE2b keystream.

    Not encryption: it hides the descriptor from casual inspection only.
    ``encode`` and ``decode`` are the same operation.
    """

    def __init__(self, key: Union[str, bytes]):
        if isinstance(key, str):
            key = key.encode("utf-8")
        if not key:
            raise ValueError("key must not be empty")
        self.key = bytes(key)

    def _keystream(self, n: int) -> bytes:
        out = bytearray()
        counter = 0
        while len(out) < n:
            out += hashlib.blake2b(self.key + counter.to_bytes(8, "little"), digest_size=64).digest()
            counter += 1
        return bytes(out[:n])

    def encode(self, data: bytes) -> bytes:
        if not data:
            return b""
        ks = self._keystream(len(data))
        x = int.from_bytes(data, "little") ^ int.from_bytes(ks, "little")
        return x.to_bytes(len(data), "little")

    decode = encode
