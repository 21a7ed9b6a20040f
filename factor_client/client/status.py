"""
Commitment status of a submitted transaction.

    Unknown    the ledger has not seen the id (or we could not ask it yet)
    Pending    in the memory pool, not yet in a block
    Committed  in a block; terminal. ``success`` says whether execution
               succeeded, ``code`` / ``description`` carry the service's
               error when it did not.

``Pending`` only appears if the ledger reports an ``in-pool`` type.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from factor_client.errors import NetworkError


class StatusKind(StrEnum):
    UNKNOWN = "unknown"
    PENDING = "in-pool"
    COMMITTED = "committed"


@dataclass(frozen=True)
class CommitmentStatus:
    kind: StatusKind
    success: bool | None = None
    code: int | None = None
    description: str | None = None

    @classmethod
    def unknown(cls) -> CommitmentStatus:
        return cls(StatusKind.UNKNOWN)

    @classmethod
    def pending(cls) -> CommitmentStatus:
        return cls(StatusKind.PENDING)

    @classmethod
    def committed(
        cls, success: bool, code: int | None = None, description: str | None = None
    ) -> CommitmentStatus:
        return cls(StatusKind.COMMITTED, success=success, code=code, description=description)

    @property
    def is_terminal(self) -> bool:
        return self.kind is StatusKind.COMMITTED

    @property
    def is_unknown(self) -> bool:
        return self.kind is StatusKind.UNKNOWN

    @property
    def is_pending(self) -> bool:
        return self.kind is StatusKind.PENDING

    @property
    def is_success(self) -> bool:
        return self.kind is StatusKind.COMMITTED and bool(self.success)

    @classmethod
    def from_response(cls, body: Mapping[str, Any], *, url: str | None = None) -> CommitmentStatus:
        """Interpret a ``GET .../transactions?hash=`` response body.

        Raises:
            NetworkError: (INVALID_RESPONSE) if ``type`` is missing or
                not one of the known values, or a committed ``status``
                is not an object.
        """
        kind = body.get("type")
        if kind == StatusKind.UNKNOWN:
            return cls.unknown()
        if kind == StatusKind.PENDING:
            return cls.pending()
        if kind == StatusKind.COMMITTED:
            status = body.get("status")
            if status is None:
                status = {}
            elif not isinstance(status, Mapping):
                raise NetworkError(
                    f"committed status must be an object, got {type(status).__name__}",
                    error_code="INVALID_RESPONSE",
                    url=url,
                )
            code = status.get("code")
            return cls.committed(
                success=status.get("type") == "success",
                code=code if isinstance(code, int) else None,
                description=status.get("description"),
            )
        raise NetworkError(
            f"unexpected transaction status type: {kind!r}",
            error_code="INVALID_RESPONSE",
            url=url,
        )


@dataclass(frozen=True)
class TransactionOutcome:
    """A status tagged with the transaction id that produced it."""

    tx_id: str
    status: CommitmentStatus

    @property
    def committed(self) -> bool:
        return self.status.is_terminal

    @property
    def success(self) -> bool:
        return self.status.is_success
