"""
Signed transaction message and its binary layout.

    offset  size  field
    0       32    author public key
    32      1     message class (0 = transaction)
    33      1     message tag   (0 = transaction)
    34      2     service_id    (u16 little-endian)
    36      2     message_id    (u16 little-endian)
    38      n     payload       (protobuf)
    38+n    64    Ed25519 signature over bytes [0, 38+n)

The transaction id is the lowercase hex SHA-256 of the whole message,
signature included.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from factor_client.crypto import SIGNATURE_SIZE, sha256_digest, verify_signature

_HEADER = struct.Struct("<32sBBHH")
HEADER_SIZE = _HEADER.size  # 38

TRANSACTION_CLASS = 0
TRANSACTION_TAG = 0


def signing_bytes(author: str, service_id: int, message_id: int, payload: bytes) -> bytes:
    """The bytes covered by the signature."""
    return _HEADER.pack(
        bytes.fromhex(author), TRANSACTION_CLASS, TRANSACTION_TAG, service_id, message_id
    ) + payload


@dataclass(frozen=True)
class SignedTransaction:
    """An immutable, signed transaction.

    Attributes:
        author: Signer public key, lowercase hex.
        service_id: Service namespace id.
        message_id: Transaction kind discriminator.
        payload: Deterministic protobuf encoding of the payload.
        signature: 64-byte Ed25519 signature.
    """

    author: str
    service_id: int
    message_id: int
    payload: bytes
    signature: bytes

    def signing_bytes(self) -> bytes:
        return signing_bytes(self.author, self.service_id, self.message_id, self.payload)

    def to_bytes(self) -> bytes:
        return self.signing_bytes() + self.signature

    def hex(self) -> str:
        return self.to_bytes().hex()

    @property
    def tx_hash(self) -> str:
        """Content address of the message (the transaction id)."""
        return sha256_digest(self.to_bytes())

    def verify(self) -> bool:
        """True iff the signature verifies under the embedded author key."""
        if len(self.signature) != SIGNATURE_SIZE:
            return False
        return verify_signature(self.author, self.signing_bytes(), self.signature)

    @classmethod
    def parse(cls, data: bytes | str) -> SignedTransaction:
        """Inverse of ``to_bytes`` (also accepts hex).

        Raises:
            ValueError: If the message is truncated or has a foreign header.
        """
        raw = bytes.fromhex(data) if isinstance(data, str) else bytes(data)
        if len(raw) < HEADER_SIZE + SIGNATURE_SIZE:
            raise ValueError(f"signed message too short: {len(raw)} bytes")
        author, cls_byte, tag, service_id, message_id = _HEADER.unpack_from(raw)
        if (cls_byte, tag) != (TRANSACTION_CLASS, TRANSACTION_TAG):
            raise ValueError(f"not a transaction message (class={cls_byte}, tag={tag})")
        return cls(
            author=author.hex(),
            service_id=service_id,
            message_id=message_id,
            payload=raw[HEADER_SIZE:-SIGNATURE_SIZE],
            signature=raw[-SIGNATURE_SIZE:],
        )
