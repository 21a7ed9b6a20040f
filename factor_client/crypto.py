"""
Hashing and signing primitives shared by transactions and proofs.

Hashing:
    SHA-256 everywhere. Merkle structures use one-byte domain
    separation tags, matching the ledger's storage layer:

        BLOB             = 0   leaf = H(0x00 || bytes)
        LIST_BRANCH_NODE = 1   node = H(0x01 || left [|| right])
        LIST_NODE        = 2   root = H(0x02 || len_u64_le || tree_root)
        MAP_NODE         = 3   root = H(0x03 || tree_root)
        MAP_BRANCH_NODE  = 4   node = H(0x04 || ...)

Signing:
    Ed25519 (deterministic) via ``cryptography``. Secret keys may be
    given as the 32-byte seed or as the 64-byte ``seed || pubkey`` form
    used by the ledger's own tooling; both are hex strings.
"""

from __future__ import annotations

import hashlib
import struct
from enum import IntEnum

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

HASH_SIZE = 32
PUBLIC_KEY_SIZE = 32
SIGNATURE_SIZE = 64
SEED_SIZE = 32

ZERO_HASH = bytes(HASH_SIZE)


class HashTag(IntEnum):
    """Domain separation prefixes for Merkle hashing."""

    BLOB = 0
    LIST_BRANCH_NODE = 1
    LIST_NODE = 2
    MAP_NODE = 3
    MAP_BRANCH_NODE = 4


# =========================================================================
# Hashing
# =========================================================================


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def sha256_digest(data: bytes) -> str:
    """Compute SHA256 hex digest of bytes."""
    return hashlib.sha256(data).hexdigest()


def hash_leaf(value: bytes) -> bytes:
    """Hash of a stored value (list element or map entry)."""
    return sha256(bytes([HashTag.BLOB]) + value)


def hash_list_branch(left: bytes, right: bytes | None = None) -> bytes:
    """Interior list node; a missing right child hashes the left alone."""
    if right is None:
        return sha256(bytes([HashTag.LIST_BRANCH_NODE]) + left)
    return sha256(bytes([HashTag.LIST_BRANCH_NODE]) + left + right)


def hash_list_node(length: int, tree_root: bytes) -> bytes:
    """Root hash of a Merkle list: binds the tree root to the list length."""
    return sha256(bytes([HashTag.LIST_NODE]) + struct.pack("<Q", length) + tree_root)


def hash_map_node(tree_root: bytes) -> bytes:
    """Root hash of a sparse Merkle map."""
    return sha256(bytes([HashTag.MAP_NODE]) + tree_root)


def hash_map_branch(branch_bytes: bytes) -> bytes:
    return sha256(bytes([HashTag.MAP_BRANCH_NODE]) + branch_bytes)


def hash_key(value: str) -> bytes:
    """Object key under which the service stores an entity (H(utf8 id))."""
    return sha256(value.encode("utf-8"))


# =========================================================================
# Keys
# =========================================================================


def _raw_public(public_key: Ed25519PublicKey) -> bytes:
    return public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)


def private_key_from_hex(secret_hex: str) -> Ed25519PrivateKey:
    """Load an Ed25519 private key from a 32-byte seed or 64-byte secret key.

    Raises:
        ValueError: If the hex is malformed or has the wrong length, or if
            the embedded public half of a 64-byte key does not match the seed.
    """
    raw = bytes.fromhex(secret_hex)
    if len(raw) == SEED_SIZE + PUBLIC_KEY_SIZE:
        seed, embedded = raw[:SEED_SIZE], raw[SEED_SIZE:]
        key = Ed25519PrivateKey.from_private_bytes(seed)
        if _raw_public(key.public_key()) != embedded:
            raise ValueError("secret key does not embed its own public key")
        return key
    if len(raw) == SEED_SIZE:
        return Ed25519PrivateKey.from_private_bytes(raw)
    raise ValueError(f"secret key must be 32 or 64 bytes, got {len(raw)}")


def public_key_from_hex(hex_string: str) -> Ed25519PublicKey:
    """Reconstruct an Ed25519 public key from hex-encoded raw bytes."""
    raw_bytes = bytes.fromhex(hex_string)
    return Ed25519PublicKey.from_public_bytes(raw_bytes)


def public_key_hex(private_key: Ed25519PrivateKey) -> str:
    """Extract the public key as a hex-encoded string (64 chars / 32 bytes)."""
    return _raw_public(private_key.public_key()).hex()


def generate_keypair() -> tuple[str, str]:
    """Generate a new keypair as ``(public_hex, secret_hex)``.

    The secret is returned in the 64-byte ``seed || pubkey`` form.
    """
    key = Ed25519PrivateKey.generate()
    seed = key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
    public = _raw_public(key.public_key())
    return public.hex(), (seed + public).hex()


# =========================================================================
# Signatures
# =========================================================================


def sign(secret_hex: str, message: bytes) -> bytes:
    """Sign ``message`` with the given secret key. Returns 64 raw bytes."""
    return private_key_from_hex(secret_hex).sign(message)


def verify_signature(public_hex: str, message: bytes, signature: bytes) -> bool:
    """Check an Ed25519 signature. Malformed keys or signatures verify False."""
    try:
        public_key_from_hex(public_hex).verify(signature, message)
    except (InvalidSignature, ValueError):
        return False
    return True
