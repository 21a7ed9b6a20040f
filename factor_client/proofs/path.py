"""
Bit paths in the sparse Merkle map.

A key is a 256-bit path from the root to a leaf. Bit ``i`` of a key is
``(key[i // 8] >> (i % 8)) & 1``, so bits are read least significant
first inside each byte. A branch node sits at a prefix of that path.

Binary form (34 bytes), used when hashing branch nodes:

    kind(1) || key(32) || length(1)

    kind    1 for a full 256-bit leaf path, 0 for a branch prefix
    key     key bytes with every bit at position >= length cleared
    length  prefix length in bits for a branch, 0 for a leaf

JSON form: a string of '0' / '1' characters, one per bit.

Paths order like their bit strings: a shorter path sorts before every
path it is a prefix of.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass

from factor_client.crypto import HASH_SIZE

KEY_BITS = HASH_SIZE * 8


class ProofStructureError(ValueError):
    """A proof is malformed or internally inconsistent."""


def _bit(key: bytes, i: int) -> int:
    return (key[i // 8] >> (i % 8)) & 1


def _truncate(key: bytes, length: int) -> bytes:
    out = bytearray(key)
    whole, rest = divmod(length, 8)
    if rest:
        out[whole] &= (1 << rest) - 1
        whole += 1
    for i in range(whole, HASH_SIZE):
        out[i] = 0
    return bytes(out)


@functools.total_ordering
@dataclass(frozen=True)
class ProofPath:
    key: bytes
    length: int = KEY_BITS

    def __post_init__(self) -> None:
        if len(self.key) != HASH_SIZE:
            raise ProofStructureError(f"path key must be {HASH_SIZE} bytes, got {len(self.key)}")
        if not 0 <= self.length <= KEY_BITS:
            raise ProofStructureError(f"path length out of range: {self.length}")
        object.__setattr__(self, "key", _truncate(self.key, self.length))

    @classmethod
    def from_key(cls, key: bytes) -> ProofPath:
        """Full-length leaf path for a 32-byte key."""
        return cls(bytes(key), KEY_BITS)

    @classmethod
    def from_bits(cls, bits: str) -> ProofPath:
        """Parse the JSON form."""
        if len(bits) > KEY_BITS or set(bits) - {"0", "1"}:
            raise ProofStructureError(f"invalid proof path: {bits!r}")
        key = bytearray(HASH_SIZE)
        for i, ch in enumerate(bits):
            if ch == "1":
                key[i // 8] |= 1 << (i % 8)
        return cls(bytes(key), len(bits))

    @property
    def is_leaf(self) -> bool:
        return self.length == KEY_BITS

    def bit(self, i: int) -> int:
        if not 0 <= i < self.length:
            raise IndexError(i)
        return _bit(self.key, i)

    def bits(self) -> str:
        return "".join(str(_bit(self.key, i)) for i in range(self.length))

    def prefix(self, length: int) -> ProofPath:
        return ProofPath(self.key, min(length, self.length))

    def common_prefix_len(self, other: ProofPath) -> int:
        limit = min(self.length, other.length)
        for i in range(limit):
            if _bit(self.key, i) != _bit(other.key, i):
                return i
        return limit

    def common_prefix(self, other: ProofPath) -> ProofPath:
        return self.prefix(self.common_prefix_len(other))

    def starts_with(self, other: ProofPath) -> bool:
        """True if ``other`` is a prefix of (or equal to) this path."""
        return other.length <= self.length and self.common_prefix_len(other) == other.length

    def to_bytes(self) -> bytes:
        if self.is_leaf:
            return b"\x01" + self.key + b"\x00"
        return b"\x00" + self.key + bytes([self.length])

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ProofPath):
            return NotImplemented
        common = self.common_prefix_len(other)
        if common < self.length and common < other.length:
            return _bit(self.key, common) < _bit(other.key, common)
        return self.length < other.length

    def __str__(self) -> str:
        return self.bits()
