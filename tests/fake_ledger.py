"""
In-memory fake of the factor ledger service.

Executes ``user.TxCreate`` / ``user.TxUpdate`` for real (signature check,
email validation, history tracking) and serves authenticated reads with
genuine Merkle proofs built from the same hashing rules the client
verifies. Two ways to talk to it:

    - ``FakeLedgerTransport(ledger)`` — a JsonTransport, no HTTP at all.
    - ``ledger.handle_request`` — an httpx callback for pytest_httpx.

Proof builders (``map_root``, ``map_proof_nodes``, ``list_root``,
``list_proof``) are module-level so proof tests can use them directly.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import urlsplit

import httpx

from factor_client.crypto import (
    ZERO_HASH,
    hash_key,
    hash_leaf,
    hash_list_branch,
    hash_list_node,
    hash_map_node,
    sha256,
)
from factor_client.errors import NetworkError
from factor_client.proofs.list_proof import tree_height
from factor_client.proofs.map_proof import hash_branch, hash_single_entry
from factor_client.proofs.path import ProofPath
from factor_client.proofs.verifier import table_key
from factor_client.schema.payload import PayloadCodec
from factor_client.schema.registry import SchemaRegistry
from factor_client.transactions.kinds import kind_for_message_id
from factor_client.transactions.message import SignedTransaction

SERVICE_ID = 128
USERS_TABLE_INDEX = 0

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# user transaction errors, as numbered by the service
ERR_INVALID_EMAIL = 2
ERR_ID_EXISTS = 3
ERR_USER_NOT_FOUND = 6


# =========================================================================
# Merkle map
# =========================================================================

Node = tuple[ProofPath, bytes]


def _sorted_leaves(leaves: Mapping[bytes, bytes]) -> list[Node]:
    return sorted(((ProofPath.from_key(k), h) for k, h in leaves.items()), key=lambda n: n[0])


def _split(items: list[Node]) -> tuple[ProofPath, list[Node], list[Node]]:
    prefix = items[0][0].common_prefix(items[-1][0])
    left = [n for n in items if n[0].bit(prefix.length) == 0]
    right = [n for n in items if n[0].bit(prefix.length) == 1]
    return prefix, left, right


def _subtree(items: list[Node]) -> Node:
    if len(items) == 1:
        return items[0]
    prefix, left, right = _split(items)
    return prefix, hash_branch(_subtree(left), _subtree(right))


def map_root(leaves: Mapping[bytes, bytes]) -> bytes:
    """Root of a map given ``key -> value_hash``."""
    items = _sorted_leaves(leaves)
    if not items:
        return hash_map_node(ZERO_HASH)
    if len(items) == 1:
        return hash_map_node(hash_single_entry(*items[0]))
    return hash_map_node(_subtree(items)[1])


def map_proof_nodes(leaves: Mapping[bytes, bytes], requested: Iterable[bytes]) -> list[Node]:
    """Pruned subtrees needed to prove ``requested`` keys (present or not)."""
    items = _sorted_leaves(leaves)
    wanted = [ProofPath.from_key(k) for k in requested]
    if not items:
        return []
    if len(items) == 1:
        return [] if items[0][0] in wanted else [items[0]]

    out: list[Node] = []

    def walk(subset: list[Node], is_root: bool) -> None:
        if len(subset) == 1:
            if subset[0][0] not in wanted:
                out.append(subset[0])
            return
        node = _subtree(subset)
        if not is_root and not any(w.starts_with(node[0]) for w in wanted):
            out.append(node)
            return
        _, left, right = _split(subset)
        walk(left, False)
        walk(right, False)

    walk(items, True)
    return out


def nodes_json(nodes: Iterable[Node]) -> list[dict[str, str]]:
    return [{"path": path.bits(), "hash": h.hex()} for path, h in nodes]


# =========================================================================
# Merkle list
# =========================================================================


def _list_node(values: list[bytes], depth: int, index: int, height: int) -> bytes:
    if depth == height:
        return hash_leaf(values[index])
    left = _list_node(values, depth + 1, 2 * index, height)
    if (2 * index + 1) << (height - depth - 1) < len(values):
        return hash_list_branch(left, _list_node(values, depth + 1, 2 * index + 1, height))
    return hash_list_branch(left)


def list_root(values: list[bytes]) -> bytes:
    """List hash ``H(0x02 || len || root)`` of 32-byte values."""
    if not values:
        return hash_list_node(0, ZERO_HASH)
    return hash_list_node(len(values), _list_node(values, 0, 0, tree_height(len(values))))


def list_proof(values: list[bytes], start: int, end: int) -> Any:
    """Range proof JSON for ``values[start:end]``."""
    n = len(values)
    if n == 0:
        return None
    height = tree_height(n)

    def node(depth: int, index: int) -> Any:
        if depth == height:
            return {"val": values[index].hex()}
        out: dict[str, Any] = {}
        for side, child in (("left", 2 * index), ("right", 2 * index + 1)):
            child_start = child << (height - depth - 1)
            child_end = (child + 1) << (height - depth - 1)
            if child_start >= n:
                out[side] = None
            elif child_start < end and start < child_end:
                out[side] = node(depth + 1, child)
            else:
                out[side] = _list_node(values, depth + 1, child, height).hex()
        return out

    return node(0, 0)


# =========================================================================
# Ledger
# =========================================================================


class FakeLedger:
    """A single-node ledger serving the users table.

    Args:
        registry: Schema registry with the basis.user descriptors.
        pending_polls: Number of status queries that answer ``in-pool``
            before a transaction reports as committed.
    """

    def __init__(self, registry: SchemaRegistry, *, pending_polls: int = 0) -> None:
        self.codec = PayloadCodec(registry, exact_timestamps=True)
        self.pending_polls = pending_polls
        self.users: dict[str, dict[str, Any]] = {}
        self.history: dict[str, list[bytes]] = {}
        self.tx_bodies: dict[str, str] = {}
        self.statuses: dict[str, dict[str, Any]] = {}
        self.status_queries: dict[str, int] = {}
        self.height = 0

    # -----------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------

    def submit(self, tx_body: str) -> str:
        tx = SignedTransaction.parse(tx_body)
        tx_hash = tx.tx_hash
        self.tx_bodies[tx_hash] = tx_body
        if not tx.verify() or tx.service_id != SERVICE_ID:
            self.statuses[tx_hash] = _error(255, "Invalid signature")
            return tx_hash
        kind = kind_for_message_id(tx.message_id)
        payload = self.codec.deserialize(kind.schema_name, tx.payload)
        if kind.name == "user.TxCreate":
            status = self._user_create(tx, tx_hash, payload)
        elif kind.name == "user.TxUpdate":
            status = self._user_update(tx_hash, payload)
        else:
            status = _error(254, f"{kind.name} is not supported here")
        self.statuses[tx_hash] = status
        self.height += 1
        return tx_hash

    def _user_create(self, tx: SignedTransaction, tx_hash: str, payload: dict[str, Any]) -> dict[str, Any]:
        if payload["id"] in self.users:
            return _error(ERR_ID_EXISTS, "ID already exists")
        if not _EMAIL.match(payload["email"]):
            return _error(ERR_INVALID_EMAIL, "Invalid email")
        history = [bytes.fromhex(tx_hash)]
        item: dict[str, Any] = {
            "id": payload["id"],
            "pubkey": payload.get("pubkey", tx.author),
            "roles": list(payload["roles"]),
            "email": payload["email"],
            "name": payload["name"],
            "meta": payload["meta"],
            "history_len": len(history),
            "history_hash": list_root(history).hex(),
        }
        if "created" in payload:
            item["created"] = payload["created"].isoformat()
            item["updated"] = payload["created"].isoformat()
        self.users[payload["id"]] = item
        self.history[payload["id"]] = history
        return _success()

    def _user_update(self, tx_hash: str, payload: dict[str, Any]) -> dict[str, Any]:
        item = self.users.get(payload["id"])
        if item is None:
            return _error(ERR_USER_NOT_FOUND, "User not found")
        if payload["email"] and not _EMAIL.match(payload["email"]):
            return _error(ERR_INVALID_EMAIL, "Invalid email")
        for name in ("email", "name", "meta"):
            if payload[name]:
                item[name] = payload[name]
        item["updated"] = payload["updated"].isoformat()
        history = self.history[payload["id"]]
        history.append(bytes.fromhex(tx_hash))
        item["history_len"] = len(history)
        item["history_hash"] = list_root(history).hex()
        return _success()

    def status(self, tx_hash: str) -> dict[str, Any]:
        if tx_hash not in self.statuses:
            return {"type": "unknown"}
        seen = self.status_queries.get(tx_hash, 0)
        self.status_queries[tx_hash] = seen + 1
        if seen < self.pending_polls:
            return {"type": "in-pool"}
        return {"type": "committed", "status": self.statuses[tx_hash]}

    # -----------------------------------------------------------------
    # State and proofs
    # -----------------------------------------------------------------

    def _user_leaves(self) -> dict[bytes, bytes]:
        return {
            hash_key(user_id): hash_leaf(self.codec.serialize("basis.user.User", item))
            for user_id, item in self.users.items()
        }

    def _state_leaves(self) -> dict[bytes, bytes]:
        return {
            table_key(SERVICE_ID, USERS_TABLE_INDEX): hash_leaf(map_root(self._user_leaves())),
            table_key(SERVICE_ID, 1): hash_leaf(sha256(b"another table")),
            table_key(7, 0): hash_leaf(sha256(b"another service")),
        }

    @property
    def state_root(self) -> str:
        return map_root(self._state_leaves()).hex()

    def user_info(self, user_id: str) -> dict[str, Any]:
        key = hash_key(user_id)
        item = self.users.get(user_id)
        users_root = map_root(self._user_leaves())
        tkey = table_key(SERVICE_ID, USERS_TABLE_INDEX)

        if item is None:
            entries: list[dict[str, Any]] = [{"missing": key.hex()}]
        else:
            entries = [{"key": key.hex(), "value": json.loads(json.dumps(item))}]

        response: dict[str, Any] = {
            "item": item,
            "item_proof": {
                "object": {
                    "entries": entries,
                    "proof": nodes_json(map_proof_nodes(self._user_leaves(), [key])),
                },
                "table": {
                    "entries": [{"key": tkey.hex(), "value": users_root.hex()}],
                    "proof": nodes_json(map_proof_nodes(self._state_leaves(), [tkey])),
                },
            },
            "block_proof": {"block": {"height": self.height, "state_hash": self.state_root}, "precommits": []},
        }
        if item is not None:
            history = self.history[user_id]
            response["item_history"] = {
                "proof": list_proof(history, 0, len(history)),
                "transactions": [{"message": self.tx_bodies[h.hex()]} for h in history],
            }
        return response

    # -----------------------------------------------------------------
    # Routing
    # -----------------------------------------------------------------

    def dispatch(
        self, method: str, path: str, params: Mapping[str, Any], body: Mapping[str, Any] | None
    ) -> tuple[int, dict[str, Any]]:
        if path.endswith("/explorer/v1/transactions"):
            if method == "POST" and body is not None:
                return 200, {"tx_hash": self.submit(body["tx_body"])}
            return 200, self.status(str(params.get("hash", "")))
        if path.endswith("/services/factor/v1/users/info"):
            return 200, self.user_info(str(params.get("id", "")))
        if path.endswith("/services/factor/v1/users"):
            return 200, {"items": [self.users[k] for k in sorted(self.users)]}
        return 404, {"error": "not found"}

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.method == "POST" else None
        status, payload = self.dispatch(request.method, request.url.path, dict(request.url.params), body)
        return httpx.Response(status, json=payload)


class FakeLedgerTransport:
    """JsonTransport that talks to a FakeLedger in-process."""

    def __init__(self, ledger: FakeLedger) -> None:
        self.ledger = ledger
        self.calls: list[tuple[str, str]] = []

    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        return self._call("GET", url, params or {}, None)

    async def post_json(self, url: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        return self._call("POST", url, {}, payload)

    def _call(
        self, method: str, url: str, params: Mapping[str, Any], body: Mapping[str, Any] | None
    ) -> dict[str, Any]:
        self.calls.append((method, url))
        status, payload = self.ledger.dispatch(method, urlsplit(url).path, params, body)
        if status >= 400:
            raise NetworkError(f"HTTP {status}", error_code="HTTP_ERROR", url=url, status_code=status)
        return payload


def _success() -> dict[str, Any]:
    return {"type": "success"}


def _error(code: int, description: str) -> dict[str, Any]:
    return {"type": "error", "code": code, "description": description}
