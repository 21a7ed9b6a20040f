"""
Sparse Merkle map proofs.

JSON shape::

    {
      "entries": [{"key": "<hex>", "value": <value>} | {"missing": "<hex>"}],
      "proof":   [{"path": "0101...", "hash": "<hex>"}]
    }

``entries`` are the requested keys (present with their value, or
proven missing). ``proof`` holds the hashes of the pruned subtrees
needed to recompute the root.

Checking:
    1. Proof paths are strictly increasing and none is a prefix of
       another.
    2. No proof path is a prefix of a requested key.
    3. Present entries (as leaves) and proof nodes are merged in path
       order and folded along the right contour of the tree into the
       root hash, which is wrapped as ``H(0x03 || root)``.

The fold keeps a stack (the contour) of subtrees not yet joined. Each
incoming node's common prefix with the top of the stack tells how many
subtrees can be joined into branch nodes before pushing it.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from factor_client.crypto import (
    HASH_SIZE,
    ZERO_HASH,
    hash_leaf,
    hash_map_branch,
    hash_map_node,
)
from factor_client.proofs.path import ProofPath, ProofStructureError

ValueEncoder = Callable[[Any], bytes]


def _hex32(value: Any, what: str) -> bytes:
    if not isinstance(value, str):
        raise ProofStructureError(f"{what} must be a hex string")
    try:
        raw = bytes.fromhex(value)
    except ValueError as exc:
        raise ProofStructureError(f"{what} is not valid hex") from exc
    if len(raw) != HASH_SIZE:
        raise ProofStructureError(f"{what} must be {HASH_SIZE} bytes, got {len(raw)}")
    return raw


def hash_branch(left: tuple[ProofPath, bytes], right: tuple[ProofPath, bytes]) -> bytes:
    """Hash of a branch node joining two child subtrees."""
    return hash_map_branch(left[1] + right[1] + left[0].to_bytes() + right[0].to_bytes())


def hash_single_entry(path: ProofPath, value_hash: bytes) -> bytes:
    """Hash of a map holding exactly one entry."""
    return hash_map_branch(path.to_bytes() + value_hash)


def collect(nodes: Sequence[tuple[ProofPath, bytes]]) -> bytes:
    """Fold path-ordered subtree hashes into the unwrapped tree root.

    Raises:
        ProofStructureError: If a lone node is not a leaf.
    """
    if not nodes:
        return ZERO_HASH
    if len(nodes) == 1:
        path, value_hash = nodes[0]
        if not path.is_leaf:
            raise ProofStructureError("a single-node proof must be a leaf")
        return hash_single_entry(path, value_hash)

    contour: list[tuple[ProofPath, bytes]] = [nodes[0], nodes[1]]
    last_prefix = nodes[0][0].common_prefix(nodes[1][0])

    def fold(prefix: ProofPath) -> ProofPath | None:
        right = contour.pop()
        left = contour.pop()
        contour.append((prefix, hash_branch(left, right)))
        if len(contour) > 1:
            return contour[-2][0].common_prefix(prefix)
        return None

    for node in nodes[2:]:
        new_prefix = contour[-1][0].common_prefix(node[0])
        while len(contour) > 1 and new_prefix.length < last_prefix.length:
            folded = fold(last_prefix)
            if folded is not None:
                last_prefix = folded
        contour.append(node)
        last_prefix = new_prefix

    while len(contour) > 1:
        folded = fold(last_prefix)
        if folded is not None:
            last_prefix = folded
    return contour[0][1]


@dataclass(frozen=True)
class CheckedMapProof:
    """Result of a successful check: the root and what it proves."""

    root_hash: bytes
    entries: dict[bytes, bytes] = field(default_factory=dict)
    missing: frozenset[bytes] = frozenset()


@dataclass(frozen=True)
class MapProof:
    """Parsed map proof.

    Attributes:
        entries: ``(key, value_bytes)`` pairs; ``value_bytes`` is None
            for a key proven missing.
        proof: ``(path, subtree_hash)`` pairs for pruned subtrees.
    """

    entries: tuple[tuple[bytes, bytes | None], ...]
    proof: tuple[tuple[ProofPath, bytes], ...]

    @classmethod
    def from_json(cls, data: Any, value_encoder: ValueEncoder) -> MapProof:
        """Parse the JSON form; ``value_encoder`` turns each value into bytes."""
        if not isinstance(data, Mapping):
            raise ProofStructureError("map proof must be an object")
        raw_entries = data.get("entries", [])
        raw_proof = data.get("proof", [])
        if not isinstance(raw_entries, list) or not isinstance(raw_proof, list):
            raise ProofStructureError("map proof entries and proof must be lists")

        entries: list[tuple[bytes, bytes | None]] = []
        for entry in raw_entries:
            if not isinstance(entry, Mapping):
                raise ProofStructureError("map proof entry must be an object")
            if "missing" in entry:
                entries.append((_hex32(entry["missing"], "missing key"), None))
            elif "key" in entry and "value" in entry:
                entries.append((_hex32(entry["key"], "entry key"), value_encoder(entry["value"])))
            else:
                raise ProofStructureError("map proof entry needs 'key' and 'value', or 'missing'")

        proof: list[tuple[ProofPath, bytes]] = []
        for node in raw_proof:
            if not isinstance(node, Mapping) or not isinstance(node.get("path"), str):
                raise ProofStructureError("map proof node needs a 'path' string")
            proof.append((ProofPath.from_bits(node["path"]), _hex32(node.get("hash"), "proof hash")))
        return cls(entries=tuple(entries), proof=tuple(proof))

    def check(self) -> CheckedMapProof:
        """Verify the proof's structure and compute the map root.

        Raises:
            ProofStructureError: If the proof is malformed.
        """
        for (prev, _), (nxt, _) in zip(self.proof, self.proof[1:]):
            if not prev < nxt:
                raise ProofStructureError(f"proof paths out of order at {nxt}")
            if nxt.starts_with(prev):
                raise ProofStructureError(f"proof path {prev} is a prefix of {nxt}")

        seen: set[bytes] = set()
        for key, _ in self.entries:
            if key in seen:
                raise ProofStructureError(f"duplicate entry for key {key.hex()}")
            seen.add(key)
            leaf = ProofPath.from_key(key)
            for path, _ in self.proof:
                if leaf.starts_with(path):
                    raise ProofStructureError(f"proof path {path} covers requested key {key.hex()}")

        present = {key: value for key, value in self.entries if value is not None}
        nodes = list(self.proof)
        nodes.extend((ProofPath.from_key(key), hash_leaf(value)) for key, value in present.items())
        nodes.sort(key=lambda node: node[0])

        return CheckedMapProof(
            root_hash=hash_map_node(collect(nodes)),
            entries=present,
            missing=frozenset(key for key, value in self.entries if value is None),
        )
