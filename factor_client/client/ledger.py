"""
Ledger client — submission, commitment tracking and verified reads.

Submission:
    ``submit`` verifies the signature locally, POSTs the signed message
    once (no automatic retry) and checks that the ledger's ``tx_hash``
    equals the locally computed content address.

Commitment tracking:
    ``poll`` is a cooperative loop against an absolute deadline taken
    from an injectable monotonic clock. It sleeps ``poll_interval``
    between status requests, cutting the last sleep short so that it
    wakes exactly at the deadline for one final check. A NetworkError
    during an iteration is logged and treated as "not seen yet". At the
    deadline it returns ``Unknown`` (or raises ``CommitTimeoutError``
    in strict mode); it never returns ``Unknown`` before the deadline.

Reads:
    ``get_entity`` fetches an entity with its proofs and passes the
    response through ``ProofVerifier``. ``list_entities`` returns the
    unverified listing.

No connection is held across suspension points: the default transport
opens a client per request, so independent submit/poll calls can run
concurrently on one LedgerClient.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import structlog

from factor_client.client.status import CommitmentStatus, TransactionOutcome
from factor_client.client.transport import HttpxTransport, JsonTransport
from factor_client.config import ClientConfig
from factor_client.entities import EntityEndpoint, get_endpoint
from factor_client.errors import (
    CommitTimeoutError,
    ConfigError,
    NetworkError,
    ProofInvalidError,
    ValidationError,
)
from factor_client.identity import Identity, IdentityRegistry
from factor_client.proofs.verifier import ProofVerifier, VerifiedEntity, state_root_from_block_proof
from factor_client.schema.registry import SchemaRegistry
from factor_client.transactions.builder import TransactionBuilder
from factor_client.transactions.kinds import TransactionKind
from factor_client.transactions.message import SignedTransaction

log = structlog.get_logger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


class LedgerClient:
    """Async client for one ledger service.

    Args:
        config: Connection and polling settings.
        registry: Loaded schema registry.
        identities: Signing identities for ``send``.
        transport: JSON transport; defaults to ``HttpxTransport``.
        clock: Monotonic clock used for poll deadlines.
        sleep: Coroutine used to wait between polls.
        strict_enums: Reject unknown enum names when building.
    """

    def __init__(
        self,
        config: ClientConfig,
        registry: SchemaRegistry,
        identities: IdentityRegistry | None = None,
        *,
        transport: JsonTransport | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
        strict_enums: bool = False,
    ) -> None:
        self.config = config
        self.registry = registry
        self.identities = identities if identities is not None else IdentityRegistry()
        self.transport: JsonTransport = transport or HttpxTransport(timeout=config.request_timeout)
        self.builder = TransactionBuilder(
            registry, self.identities, config.service_id, strict_enums=strict_enums
        )
        self.verifier = ProofVerifier(registry, config.service_id)
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        identities: IdentityRegistry | None = None,
        **kwargs: Any,
    ) -> LedgerClient:
        """Build a client, loading schemas from ``config.schema_dir``.

        Raises:
            ConfigError: If ``schema_dir`` is not set.
            SchemaLoadError: If the descriptors cannot be loaded.
        """
        if not config.schema_dir:
            raise ConfigError("schema_dir is required to load schemas", details={"key": "schema_dir"})
        registry = SchemaRegistry.from_directory(config.schema_dir)
        return cls(config, registry, identities, **kwargs)

    # =====================================================================
    # Submission
    # =====================================================================

    async def submit(self, tx: SignedTransaction) -> str:
        """Submit a signed transaction and return its id.

        Raises:
            ValidationError: If the signature does not verify locally.
            NetworkError: On transport failure, or if the ledger's hash
                is missing or differs from the local content address.
        """
        if not tx.verify():
            raise ValidationError("", "transaction signature does not verify")
        url = self.config.transactions_url
        body = await self.transport.post_json(url, {"tx_body": tx.hex()})

        tx_id = tx.tx_hash
        returned = body.get("tx_hash")
        if not isinstance(returned, str):
            raise NetworkError("submit response has no tx_hash", error_code="INVALID_RESPONSE", url=url)
        if returned.lower() != tx_id:
            raise NetworkError(
                f"ledger returned tx_hash {returned}, expected {tx_id}",
                error_code="INVALID_RESPONSE",
                url=url,
            )
        log.info("transaction_submitted", tx_id=tx_id, message_id=tx.message_id)
        return tx_id

    # =====================================================================
    # Commitment tracking
    # =====================================================================

    async def get_status(self, tx_id: str) -> CommitmentStatus:
        """One status request. HTTP 404 reads as ``Unknown``."""
        url = self.config.transactions_url
        try:
            body = await self.transport.get_json(url, {"hash": tx_id})
        except NetworkError as exc:
            if exc.status_code == 404:
                return CommitmentStatus.unknown()
            raise
        return CommitmentStatus.from_response(body, url=url)

    async def poll(
        self,
        tx_id: str,
        timeout: float | None = None,
        *,
        strict: bool | None = None,
    ) -> CommitmentStatus:
        """Poll until the transaction is committed or the deadline passes.

        Args:
            tx_id: Transaction id returned by ``submit``.
            timeout: Seconds until the deadline (default ``poll_timeout``).
            strict: Raise instead of returning ``Unknown`` at the
                deadline (default ``strict_poll``).

        Raises:
            CommitTimeoutError: Strict mode only, at the deadline.
        """
        timeout = self.config.poll_timeout if timeout is None else timeout
        strict = self.config.strict_poll if strict is None else strict
        deadline = self._clock() + timeout
        last = CommitmentStatus.unknown()
        attempts = 0

        while True:
            attempts += 1
            try:
                last = await self.get_status(tx_id)
            except NetworkError as exc:
                log.warning(
                    "poll_network_error",
                    tx_id=tx_id,
                    error_code=exc.error_code,
                    error=str(exc),
                )
            else:
                if last.is_terminal:
                    return last

            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            await self._sleep(min(self.config.poll_interval, remaining))

        log.info("poll_timeout", tx_id=tx_id, timeout=timeout, attempts=attempts, last=str(last.kind))
        if strict:
            raise CommitTimeoutError(tx_id, timeout)
        return CommitmentStatus.unknown()

    async def wait_for(
        self,
        tx_id: str,
        timeout: float | None = None,
        *,
        strict: bool | None = None,
    ) -> TransactionOutcome:
        status = await self.poll(tx_id, timeout, strict=strict)
        return TransactionOutcome(tx_id=tx_id, status=status)

    async def send(
        self,
        kind: TransactionKind | str,
        payload: Mapping[str, Any],
        signer: Identity | str,
        *,
        wait: bool = True,
        timeout: float | None = None,
        strict: bool | None = None,
    ) -> TransactionOutcome:
        """Build, submit and (unless ``wait=False``) wait for a transaction."""
        tx = self.builder.build(kind, payload, signer)
        tx_id = await self.submit(tx)
        if not wait:
            return TransactionOutcome(tx_id=tx_id, status=CommitmentStatus.unknown())
        return await self.wait_for(tx_id, timeout, strict=strict)

    # =====================================================================
    # Reads
    # =====================================================================

    async def get_entity(
        self,
        endpoint: EntityEndpoint | str,
        key: str,
        *,
        state_root: bytes | str | None = None,
        verify_history: bool = True,
        history_range: tuple[int, int] | None = None,
    ) -> VerifiedEntity:
        """Fetch and verify one entity.

        Without ``state_root`` the response's own block header is
        trusted for the state root.

        Raises:
            NetworkError: On transport failure.
            ProofInvalidError: If verification fails.
        """
        ep = get_endpoint(endpoint)
        body = await self.transport.get_json(self.config.service_url(ep.info_path), {ep.key_field: key})
        root = state_root if state_root is not None else state_root_from_block_proof(body)
        if root is None:
            log.warning("proof_invalid", layer="table", reason="no state root")
            raise ProofInvalidError("table", "no state root supplied and response has no block proof")
        return self.verifier.verify_entity(
            ep,
            body,
            root,
            key=key,
            history_range=history_range,
            verify_history=verify_history,
        )

    async def list_entities(
        self,
        endpoint: EntityEndpoint | str,
        *,
        after: str | None = None,
        per_page: int | None = None,
    ) -> list[dict[str, Any]]:
        """List entities (unverified)."""
        ep = get_endpoint(endpoint)
        params: dict[str, Any] = {}
        if after is not None:
            params["after"] = after
        if per_page is not None:
            params["per_page"] = per_page
        url = self.config.service_url(ep.path)
        body = await self.transport.get_json(url, params or None)
        items = body.get("items")
        if not isinstance(items, list):
            raise NetworkError("list response has no items", error_code="INVALID_RESPONSE", url=url)
        return items
