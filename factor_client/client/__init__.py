"""Network boundary: transport, commitment status and the ledger client."""

from factor_client.client.ledger import LedgerClient
from factor_client.client.status import CommitmentStatus, StatusKind, TransactionOutcome
from factor_client.client.transport import HttpxTransport, JsonTransport

__all__ = [
    "CommitmentStatus",
    "HttpxTransport",
    "JsonTransport",
    "LedgerClient",
    "StatusKind",
    "TransactionOutcome",
]
