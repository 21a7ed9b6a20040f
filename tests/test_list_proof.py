"""
Tests for ListProof.

Test plan:
- Full and partial range proofs over lists of 1, 2, 3, 5 and 8 values
  reproduce the list hash computed by the fake ledger's tree builder
- Missing right children: allowed past the end, rejected inside the list
- Wrong depth, past-the-end leaves, bad hex and a non-empty proof for an
  empty list are rejected
"""

from __future__ import annotations

from typing import Any

import pytest

from factor_client.crypto import ZERO_HASH, hash_list_node, sha256
from factor_client.proofs import ListProof, ProofStructureError
from factor_client.proofs.list_proof import tree_height

from fake_ledger import list_proof, list_root


def _values(n: int) -> list[bytes]:
    return [sha256(f"tx-{i}".encode()) for i in range(n)]


class TestTreeHeight:
    @pytest.mark.parametrize(
        ("length", "height"),
        [(0, 0), (1, 0), (2, 1), (3, 2), (4, 2), (5, 3), (8, 3), (9, 4)],
    )
    def test_height(self, length: int, height: int) -> None:
        assert tree_height(length) == height


class TestListProofCheck:
    @pytest.mark.parametrize("n", [1, 2, 3, 5, 8])
    def test_full_range(self, n: int) -> None:
        values = _values(n)
        checked = ListProof(list_proof(values, 0, n), n).check()
        assert checked.list_hash == list_root(values)
        assert [v for _, v in checked.entries] == values
        assert [i for i, _ in checked.entries] == list(range(n))

    @pytest.mark.parametrize(("n", "start", "end"), [(5, 1, 3), (5, 4, 5), (8, 3, 4), (3, 0, 1)])
    def test_partial_range(self, n: int, start: int, end: int) -> None:
        values = _values(n)
        checked = ListProof(list_proof(values, start, end), n).check()
        assert checked.list_hash == list_root(values)
        assert checked.entries == tuple((i, values[i]) for i in range(start, end))

    def test_empty_list(self) -> None:
        checked = ListProof(None, 0).check()
        assert checked.list_hash == hash_list_node(0, ZERO_HASH) == list_root([])
        assert checked.entries == ()

    def test_empty_list_with_nodes_rejected(self) -> None:
        with pytest.raises(ProofStructureError, match="empty"):
            ListProof({"val": "aa" * 32}, 0).check()


class TestListProofStructure:
    def test_missing_right_past_end_allowed(self) -> None:
        values = _values(3)
        proof: dict[str, Any] = list_proof(values, 0, 3)
        assert proof["right"]["right"] is None
        del proof["right"]["right"]
        assert ListProof(proof, 3).check().list_hash == list_root(values)

    def test_missing_right_inside_list_rejected(self) -> None:
        proof: dict[str, Any] = list_proof(_values(4), 0, 4)
        proof["right"] = None
        with pytest.raises(ProofStructureError, match="inside the list"):
            ListProof(proof, 4).check()

    def test_right_past_end_rejected(self) -> None:
        values = _values(3)
        proof: dict[str, Any] = list_proof(values, 0, 3)
        proof["right"]["right"] = "aa" * 32
        with pytest.raises(ProofStructureError, match="past the end"):
            ListProof(proof, 3).check()

    def test_leaf_too_shallow_rejected(self) -> None:
        values = _values(4)
        proof = {"left": {"val": values[0].hex()}, "right": list_proof(values, 0, 4)["right"]}
        with pytest.raises(ProofStructureError, match="expected depth"):
            ListProof(proof, 4).check()

    def test_branch_at_leaf_depth_rejected(self) -> None:
        with pytest.raises(ProofStructureError, match="expected a leaf"):
            ListProof({"left": "aa" * 32, "right": None}, 1).check()

    def test_bad_hex_rejected(self) -> None:
        with pytest.raises(ProofStructureError, match="not valid hex"):
            ListProof({"left": "zz" * 32, "right": {"val": "aa" * 32}}, 2).check()

    def test_short_hash_rejected(self) -> None:
        with pytest.raises(ProofStructureError, match="32 bytes"):
            ListProof({"val": "aa" * 8}, 1).check()

    def test_non_object_node_rejected(self) -> None:
        with pytest.raises(ProofStructureError, match="must be an object"):
            ListProof(["aa" * 32], 1).check()
