"""
Merkle list range proofs.

A list of ``n`` values is a binary tree with every leaf at depth
``H = ceil(log2(n))`` (a one-element list is just its leaf). Subtrees
past the end of the list do not exist; a node whose right subtree is
empty hashes its left child alone.

JSON shape, recursively::

    {"val": "<hex>"}                        leaf (the stored value)
    {"left": <node | hex>, "right": <node | hex | null>}

A hex string in place of a child is the hash of a pruned subtree. A
missing or null right child is only allowed where the right subtree
would start at or past ``n``.

The list hash binds the tree root to the list length::

    H(0x02 || n as u64 LE || root)
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from factor_client.crypto import ZERO_HASH, hash_leaf, hash_list_branch, hash_list_node
from factor_client.proofs.path import ProofStructureError


def tree_height(length: int) -> int:
    """Depth of the leaves in a list of ``length`` values."""
    return max(length - 1, 0).bit_length()


def _hash_hex(value: str, what: str) -> bytes:
    try:
        raw = bytes.fromhex(value)
    except ValueError as exc:
        raise ProofStructureError(f"{what} is not valid hex") from exc
    if len(raw) != 32:
        raise ProofStructureError(f"{what} must be 32 bytes, got {len(raw)}")
    return raw


@dataclass(frozen=True)
class CheckedListProof:
    """Result of a successful check.

    Attributes:
        list_hash: ``H(0x02 || length || root)``.
        entries: ``(index, value)`` for every leaf in the proof, in order.
    """

    list_hash: bytes
    length: int
    entries: tuple[tuple[int, bytes], ...]


@dataclass(frozen=True)
class ListProof:
    root: Any
    length: int

    def check(self) -> CheckedListProof:
        """Recompute the list hash and collect the proven leaves.

        Raises:
            ProofStructureError: If the proof does not fit a list of
                ``length`` values.
        """
        if self.length < 0:
            raise ProofStructureError(f"negative list length {self.length}")
        if self.length == 0:
            if self.root not in (None, {}):
                raise ProofStructureError("proof for an empty list must be empty")
            return CheckedListProof(hash_list_node(0, ZERO_HASH), 0, ())

        entries: list[tuple[int, bytes]] = []
        root = self._node(self.root, 0, 0, tree_height(self.length), entries)
        return CheckedListProof(hash_list_node(self.length, root), self.length, tuple(entries))

    def _node(self, node: Any, depth: int, index: int, height: int, entries: list[tuple[int, bytes]]) -> bytes:
        if not isinstance(node, Mapping):
            raise ProofStructureError(f"list proof node at depth {depth} must be an object")

        if depth == height:
            if set(node) != {"val"} or not isinstance(node["val"], str):
                raise ProofStructureError(f"expected a leaf at index {index}")
            if index >= self.length:
                raise ProofStructureError(f"leaf index {index} is past the end of the list")
            value = _hash_hex(node["val"], f"leaf {index}")
            entries.append((index, value))
            return hash_leaf(value)

        if "val" in node:
            raise ProofStructureError(f"leaf at depth {depth}, expected depth {height}")
        left = self._child(node.get("left"), depth, 2 * index, height, entries)
        if left is None:
            raise ProofStructureError(f"branch at depth {depth} has no left child")
        right_start = (2 * index + 1) << (height - depth - 1)
        right = self._child(node.get("right"), depth, 2 * index + 1, height, entries)
        if right is None and right_start < self.length:
            raise ProofStructureError(f"right child missing at depth {depth} inside the list")
        if right is not None and right_start >= self.length:
            raise ProofStructureError(f"right child at depth {depth} is past the end of the list")
        return hash_list_branch(left, right)

    def _child(
        self, child: Any, depth: int, index: int, height: int, entries: list[tuple[int, bytes]]
    ) -> bytes | None:
        if child is None:
            return None
        if isinstance(child, str):
            return _hash_hex(child, f"pruned hash at depth {depth + 1}")
        return self._node(child, depth + 1, index, height, entries)
