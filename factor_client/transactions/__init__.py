"""Transaction kinds, signed messages and the builder."""

from factor_client.transactions.builder import TransactionBuilder
from factor_client.transactions.kinds import (
    TRANSACTION_KINDS,
    TransactionKind,
    get_kind,
    kind_for_message_id,
)
from factor_client.transactions.message import SignedTransaction

__all__ = [
    "TRANSACTION_KINDS",
    "SignedTransaction",
    "TransactionBuilder",
    "TransactionKind",
    "get_kind",
    "kind_for_message_id",
]
