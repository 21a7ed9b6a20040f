"""
factor-client — typed, signed transactions and verified reads for the
factor ledger service.

Public API:

    Schemas (loaded once per process):
        - ``SchemaRegistry`` — JSON descriptors -> typed schemas + protobuf classes.
        - ``PayloadCodec`` — native payloads <-> wire dicts <-> protobuf bytes.

    Identities:
        - ``IdentityRegistry`` / ``Identity`` — named Ed25519 keypairs.

    Pure layer (no I/O):
        - ``TransactionBuilder`` — payload + signer -> ``SignedTransaction``.
        - ``TRANSACTION_KINDS`` / ``get_kind`` — append-only kind list.
        - ``ProofVerifier`` — read response + state root -> ``VerifiedEntity``.

    Impure layer (network I/O):
        - ``LedgerClient`` — submit, poll / wait_for, send, get_entity,
          list_entities.

    Transport:
        - ``JsonTransport`` — injectable transport protocol.
        - ``HttpxTransport`` — default httpx-based transport.

    Ambient:
        - ``ClientConfig`` / ``load_config`` — configuration.
        - ``configure_logging`` — structlog setup.
        - ``FactorClientError`` and subclasses — error taxonomy.
"""

from factor_client.client import (
    CommitmentStatus,
    HttpxTransport,
    JsonTransport,
    LedgerClient,
    StatusKind,
    TransactionOutcome,
)
from factor_client.config import ClientConfig, load_config
from factor_client.entities import ENTITY_ENDPOINTS, EntityEndpoint, get_endpoint
from factor_client.errors import (
    CommitTimeoutError,
    ConfigError,
    FactorClientError,
    NetworkError,
    ProofInvalidError,
    SchemaLoadError,
    UnknownFieldError,
    UnknownIdentityError,
    UnknownSchemaError,
    UnknownTransactionKindError,
    ValidationError,
)
from factor_client.identity import Identity, IdentityRegistry
from factor_client.observability import configure_logging
from factor_client.proofs import ProofVerifier, VerifiedEntity
from factor_client.schema import SchemaRegistry
from factor_client.schema.payload import PayloadCodec
from factor_client.transactions import (
    TRANSACTION_KINDS,
    SignedTransaction,
    TransactionBuilder,
    TransactionKind,
    get_kind,
)

__version__ = "0.1.0"

__all__ = [
    "ENTITY_ENDPOINTS",
    "TRANSACTION_KINDS",
    "ClientConfig",
    "CommitTimeoutError",
    "CommitmentStatus",
    "ConfigError",
    "EntityEndpoint",
    "FactorClientError",
    "HttpxTransport",
    "Identity",
    "IdentityRegistry",
    "JsonTransport",
    "LedgerClient",
    "NetworkError",
    "PayloadCodec",
    "ProofInvalidError",
    "ProofVerifier",
    "SchemaLoadError",
    "SchemaRegistry",
    "SignedTransaction",
    "StatusKind",
    "TransactionBuilder",
    "TransactionKind",
    "TransactionOutcome",
    "UnknownFieldError",
    "UnknownIdentityError",
    "UnknownSchemaError",
    "UnknownTransactionKindError",
    "ValidationError",
    "VerifiedEntity",
    "configure_logging",
    "get_endpoint",
    "get_kind",
    "load_config",
]
