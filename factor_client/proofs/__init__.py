"""Merkle proofs for authenticated reads."""

from factor_client.proofs.list_proof import CheckedListProof, ListProof
from factor_client.proofs.map_proof import CheckedMapProof, MapProof
from factor_client.proofs.path import ProofPath, ProofStructureError
from factor_client.proofs.verifier import (
    ProofVerifier,
    VerifiedEntity,
    state_root_from_block_proof,
    table_key,
)

__all__ = [
    "CheckedListProof",
    "CheckedMapProof",
    "ListProof",
    "MapProof",
    "ProofPath",
    "ProofStructureError",
    "ProofVerifier",
    "VerifiedEntity",
    "state_root_from_block_proof",
    "table_key",
]
