"""
Proof verifier — turns a read response into a trusted entity.

Trust chain, innermost first:

    item ──(object map proof)──► object table root
         ──(table map proof)───► state root  == expected_state_root
    item.history_hash ◄──(list proof)── transaction hashes

1. Object layer: the object proof must show the requested key either
   missing (and then ``item`` must be null) or mapped to exactly the
   bytes of the re-encoded ``item``. Re-encoding keeps timestamps at
   full nanosecond precision, so stored values are reproduced exactly.
2. Table layer: the table proof must map the object table's key,
   ``H(service_id u16 LE || table_index u64 LE)``, to the object root,
   and its own root must equal ``expected_state_root``.
3. History layer (present items with ``history_len`` / ``history_hash``
   fields): the list proof must hash to ``history_hash`` for a list of
   ``history_len`` values, and cover exactly the requested window.
4. Decode layer: fields are decoded from the verified bytes.

Every failure raises ``ProofInvalidError`` naming its layer and logs
``proof_invalid``. There is no partial result.

The block proof's precommit signatures are not checked; callers that
do not supply a state root trust the response's block header.
"""

from __future__ import annotations

import struct
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from factor_client.config import DEFAULT_SERVICE_ID
from factor_client.crypto import hash_key, sha256, sha256_digest
from factor_client.entities import EntityEndpoint
from factor_client.errors import ProofInvalidError, ValidationError
from factor_client.proofs.list_proof import ListProof
from factor_client.proofs.map_proof import MapProof
from factor_client.proofs.path import ProofStructureError
from factor_client.schema.descriptor import MessageSchema
from factor_client.schema.payload import PayloadCodec
from factor_client.schema.registry import SchemaRegistry

log = structlog.get_logger(__name__)

HISTORY_LEN_FIELD = "history_len"
HISTORY_HASH_FIELD = "history_hash"


def table_key(service_id: int, table_index: int) -> bytes:
    """Key of a service table in the state map."""
    return sha256(struct.pack("<HQ", service_id, table_index))


def state_root_from_block_proof(response: Mapping[str, Any]) -> str | None:
    """``block_proof.block.state_hash`` of a read response, if present."""
    block_proof = response.get("block_proof")
    if not isinstance(block_proof, Mapping):
        return None
    block = block_proof.get("block")
    if not isinstance(block, Mapping):
        return None
    state_hash = block.get("state_hash")
    return state_hash if isinstance(state_hash, str) else None


@dataclass(frozen=True)
class VerifiedEntity:
    """An entity read whose every layer has been verified.

    Attributes:
        schema_name: Message type of the entity.
        object_key: Hex key of the object in its table.
        fields: Decoded native fields, or None when absence was proven.
        table_root: Verified root of the object table (hex).
        state_root: Verified state root (hex).
        history: Transaction hashes proven by the history proof, in
            order, or None when no history proof was checked.
    """

    schema_name: str
    object_key: str
    fields: dict[str, Any] | None
    table_root: str
    state_root: str
    history: list[str] | None = None

    @property
    def exists(self) -> bool:
        return self.fields is not None


class ProofVerifier:
    """Verifies read responses for one service."""

    def __init__(
        self,
        registry: SchemaRegistry,
        service_id: int = DEFAULT_SERVICE_ID,
        *,
        codec: PayloadCodec | None = None,
    ) -> None:
        self.registry = registry
        self.service_id = service_id
        self.codec = codec or PayloadCodec(registry, exact_timestamps=True)

    def verify_entity(
        self,
        schema: EntityEndpoint | str,
        response: Mapping[str, Any],
        expected_state_root: bytes | str,
        *,
        key: str | bytes | None = None,
        history_range: tuple[int, int] | None = None,
        verify_history: bool = True,
    ) -> VerifiedEntity:
        """Verify a read response against a trusted state root.

        Args:
            schema: Endpoint (or bare schema name) the response came from.
            response: Parsed JSON body of the ``/info`` endpoint.
            expected_state_root: Trusted state root, bytes or hex.
            key: Entity key (e.g. the user id) or the raw 32-byte object
                key. Required to prove absence; when the item is present
                it defaults to the item's key field.
            history_range: ``(start, end)`` window of the history proof.
                Defaults to the whole history.
            verify_history: Skip the history layer when False.

        Raises:
            ProofInvalidError: If any layer fails.
        """
        if isinstance(schema, EntityEndpoint):
            endpoint = schema
        else:
            endpoint = EntityEndpoint(name=schema, path="", schema_name=schema)
        message = self.registry.resolve(endpoint.schema_name)
        try:
            state_root = _as_hash(expected_state_root)
        except ValueError as exc:
            raise self._fail("table", str(exc)) from exc

        item = response.get("item")
        item_proof = response.get("item_proof")
        if not isinstance(item_proof, Mapping):
            raise self._fail("object", "response has no item_proof")

        # Object layer
        item_bytes = self._encode_item(message, item) if item is not None else None
        object_key = self._object_key(endpoint, item, key)
        try:
            object_proof = MapProof.from_json(
                item_proof.get("object"), lambda value: self._encode_item(message, value)
            ).check()
        except ProofStructureError as exc:
            raise self._fail("object", str(exc)) from exc

        if item_bytes is None:
            if object_key not in object_proof.missing:
                raise self._fail("object", f"key {object_key.hex()} is not proven missing")
            if object_proof.entries:
                raise self._fail("object", "absence proof carries present entries")
        elif object_proof.entries.get(object_key) != item_bytes:
            raise self._fail("object", f"item does not match the proven value for {object_key.hex()}")
        object_root = object_proof.root_hash

        # Table layer
        try:
            table_proof = MapProof.from_json(item_proof.get("table"), _table_value).check()
        except ProofStructureError as exc:
            raise self._fail("table", str(exc)) from exc
        if table_proof.entries.get(table_key(self.service_id, endpoint.table_index)) != object_root:
            raise self._fail("table", "object table root is not proven in the state")
        if table_proof.root_hash != state_root:
            raise self._fail(
                "table",
                f"state root {table_proof.root_hash.hex()} != expected {state_root.hex()}",
            )

        fields = None
        history = None
        if item_bytes is not None:
            try:
                fields = self.codec.deserialize(message, item_bytes)
            except ValidationError as exc:
                raise self._fail("decode", str(exc)) from exc
            history_json = response.get("item_history")
            if verify_history and isinstance(history_json, Mapping) and _has_history(message):
                history = self._verify_history(fields, history_json, history_range)

        return VerifiedEntity(
            schema_name=message.full_name,
            object_key=object_key.hex(),
            fields=fields,
            table_root=object_root.hex(),
            state_root=state_root.hex(),
            history=history,
        )

    # -----------------------------------------------------------------

    def _encode_item(self, message: MessageSchema, value: Any) -> bytes:
        try:
            return self.codec.serialize(message, value)
        except ValidationError as exc:
            raise self._fail("decode", f"cannot re-encode item: {exc}") from exc

    def _object_key(self, endpoint: EntityEndpoint, item: Any, key: str | bytes | None) -> bytes:
        if isinstance(key, bytes):
            if len(key) != 32:
                raise self._fail("object", "raw object key must be 32 bytes")
            return key
        item_key = item.get(endpoint.key_field) if isinstance(item, Mapping) else None
        if key is None:
            if item_key is None:
                raise self._fail("object", f"cannot derive object key: no {endpoint.key_field!r}")
            key = str(item_key)
        elif item_key is not None and str(item_key) != key:
            raise self._fail("object", f"item {endpoint.key_field} {item_key!r} != requested {key!r}")
        return hash_key(key)

    def _verify_history(
        self,
        fields: Mapping[str, Any],
        history_json: Mapping[str, Any],
        history_range: tuple[int, int] | None,
    ) -> list[str]:
        length = fields.get(HISTORY_LEN_FIELD)
        expected = fields.get(HISTORY_HASH_FIELD)
        if not isinstance(length, int) or not isinstance(expected, str):
            raise self._fail("history", "item has no history_len / history_hash")
        claimed = history_json.get("length", length)
        if claimed != length:
            raise self._fail("history", f"proof length {claimed} != history_len {length}")

        try:
            checked = ListProof(history_json.get("proof"), length).check()
        except ProofStructureError as exc:
            raise self._fail("history", str(exc)) from exc
        if checked.list_hash.hex() != expected:
            raise self._fail("history", "history proof does not match history_hash")

        start, end = history_range if history_range is not None else (0, length)
        indices = [index for index, _ in checked.entries]
        if indices != list(range(start, end)):
            raise self._fail(
                "history",
                f"proof covers {len(indices)} entries, requested window [{start}, {end})",
            )

        hashes = [value.hex() for _, value in checked.entries]
        transactions = history_json.get("transactions")
        if transactions is not None:
            self._check_transactions(transactions, hashes)
        return hashes

    def _check_transactions(self, transactions: Any, hashes: list[str]) -> None:
        if not isinstance(transactions, list) or len(transactions) != len(hashes):
            raise self._fail("history", "transactions do not match the proven history")
        for tx, expected in zip(transactions, hashes):
            body = tx.get("message") if isinstance(tx, Mapping) else tx
            if not isinstance(body, str):
                raise self._fail("history", f"transaction entry for {expected} has no message")
            try:
                actual = sha256_digest(bytes.fromhex(body))
            except ValueError as exc:
                raise self._fail("history", "transaction message is not valid hex") from exc
            if actual != expected:
                raise self._fail("history", f"transaction {actual} is not in the proven history")

    @staticmethod
    def _fail(layer: str, reason: str) -> ProofInvalidError:
        log.warning("proof_invalid", layer=layer, reason=reason)
        return ProofInvalidError(layer, reason)


def _as_hash(value: bytes | str) -> bytes:
    if isinstance(value, str):
        try:
            raw = bytes.fromhex(value)
        except ValueError as exc:
            raise ValueError(f"state root is not valid hex: {value!r}") from exc
    elif isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        raise ValueError(f"state root must be bytes or hex, got {type(value).__name__}")
    if len(raw) != 32:
        raise ValueError(f"state root must be 32 bytes, got {len(raw)}")
    return raw


def _table_value(value: Any) -> bytes:
    if not isinstance(value, str):
        raise ProofStructureError("table value must be a hex hash")
    try:
        raw = bytes.fromhex(value)
    except ValueError as exc:
        raise ProofStructureError("table value is not valid hex") from exc
    if len(raw) != 32:
        raise ProofStructureError("table value must be 32 bytes")
    return raw


def _has_history(message: MessageSchema) -> bool:
    return message.has_field(HISTORY_LEN_FIELD) and message.has_field(HISTORY_HASH_FIELD)
