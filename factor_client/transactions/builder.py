"""
Transaction builder — native payload in, signed transaction out.

Pipeline (pure, no network I/O):

    kind name ─► TransactionKind ─► MessageSchema
    payload   ─► value codecs   ─► validate ─► protobuf bytes
    signer    ─► Identity       ─► Ed25519 signature ─► local verify

Every failure surfaces before a byte leaves the process.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from factor_client.config import DEFAULT_SERVICE_ID
from factor_client.crypto import sign
from factor_client.errors import ValidationError
from factor_client.identity import Identity, IdentityRegistry
from factor_client.schema.payload import PayloadCodec
from factor_client.schema.registry import SchemaRegistry
from factor_client.transactions.kinds import TransactionKind, get_kind
from factor_client.transactions.message import SignedTransaction, signing_bytes

log = structlog.get_logger(__name__)


class TransactionBuilder:
    """Builds signed transactions for one service.

    Args:
        registry: Schema registry resolving payload messages.
        identities: Registry used to resolve signer names.
        service_id: Service namespace id stamped into every message.
        strict_enums: Reject unknown enum names instead of mapping
            them to ordinal 0.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        identities: IdentityRegistry | None = None,
        service_id: int = DEFAULT_SERVICE_ID,
        *,
        strict_enums: bool = False,
    ) -> None:
        self.registry = registry
        self.identities = identities if identities is not None else IdentityRegistry()
        self.service_id = service_id
        self.codec = PayloadCodec(registry, strict_enums=strict_enums)

    def build(
        self,
        kind: TransactionKind | str,
        payload: Mapping[str, Any],
        signer: Identity | str,
    ) -> SignedTransaction:
        """Encode, validate, serialize and sign a payload.

        Raises:
            UnknownTransactionKindError: ``kind`` is not a known kind.
            UnknownSchemaError: The kind's schema is not loaded.
            UnknownIdentityError: ``signer`` names no registered identity.
            UnknownFieldError: The payload has an undeclared field.
            ValidationError: The payload does not match the schema.
        """
        tx_kind = get_kind(kind)
        schema = self.registry.resolve(tx_kind.schema_name)
        identity = signer if isinstance(signer, Identity) else self.identities.resolve(signer)

        body = self.codec.serialize(schema, payload)
        message = signing_bytes(identity.public_key, self.service_id, tx_kind.message_id, body)
        tx = SignedTransaction(
            author=identity.public_key,
            service_id=self.service_id,
            message_id=tx_kind.message_id,
            payload=body,
            signature=sign(identity.secret_key, message),
        )
        if not tx.verify():
            raise ValidationError("", f"signature by {identity.name!r} does not verify")

        log.debug(
            "transaction_built",
            kind=tx_kind.name,
            tx_hash=tx.tx_hash,
            signer=identity.name,
            payload_size=len(body),
        )
        return tx
