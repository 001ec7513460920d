"""
Wire helpers shared by the store adapters and the local authority.

Clear values travel as ABI-style words: each value is a 32-byte big-endian
unsigned integer and the encoding is their concatenation.
"""

from __future__ import annotations

import hashlib
from typing import Iterable, List

WORD_SIZE = 32


def encode_clear_values(values: Iterable[int]) -> bytes:
    """Encode unsigned integers as concatenated 32-byte words."""
    out = bytearray()
    for value in values:
        if value < 0:
            raise ValueError(f"clear values must be unsigned, got {value}")
        out += int(value).to_bytes(WORD_SIZE, "big")
    return bytes(out)


def decode_clear_values(data: bytes) -> List[int]:
    """Inverse of `encode_clear_values`."""
    if len(data) % WORD_SIZE:
        raise ValueError(f"encoded clear values length {len(data)} is not a multiple of {WORD_SIZE}")
    return [
        int.from_bytes(data[offset : offset + WORD_SIZE], "big")
        for offset in range(0, len(data), WORD_SIZE)
    ]


def derive_handle(context: str, record_id: str, ciphertext: bytes) -> str:
    """Deterministic handle for a stored ciphertext."""
    digest = hashlib.sha256()
    digest.update(context.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(record_id.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(ciphertext)
    return "0x" + digest.hexdigest()


__all__ = ["WORD_SIZE", "decode_clear_values", "derive_handle", "encode_clear_values"]
