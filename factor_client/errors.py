"""
Error taxonomy for the factor ledger client.

Every error carries a machine-readable ``error_code`` plus a
human-readable message, so callers can match on either. ``details``
holds structured context (field names, URLs, proof layers) and never
contains secrets.

Recovery policy:
    - Programming errors (unknown schema / kind / identity, validation)
      surface immediately and are never retried.
    - NetworkError surfaces from ``submit``; the poll loop swallows it
      and keeps polling until its deadline.
    - ProofInvalidError is always fatal to the read.
"""

from __future__ import annotations

from typing import Any


class FactorClientError(Exception):
    """Base class for all client errors."""

    default_code = "CLIENT_ERROR"

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details: dict[str, Any] = details or {}

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": dict(self.details),
        }


class ConfigError(FactorClientError):
    """Configuration is missing or malformed."""

    default_code = "CONFIG"


class SchemaLoadError(FactorClientError):
    """Schema descriptors could not be loaded. Fatal at startup."""

    default_code = "SCHEMA_LOAD"


class UnknownSchemaError(FactorClientError):
    """A schema or enum name is not present in the registry."""

    default_code = "UNKNOWN_SCHEMA"

    def __init__(self, name: str) -> None:
        super().__init__(f"unknown schema: {name!r}", details={"name": name})
        self.name = name


class UnknownTransactionKindError(FactorClientError):
    """A transaction kind is not in the kind list."""

    default_code = "UNKNOWN_TRANSACTION_KIND"

    def __init__(self, kind: str) -> None:
        super().__init__(f"unknown transaction kind: {kind!r}", details={"kind": kind})
        self.kind = kind


class UnknownIdentityError(FactorClientError):
    """No identity is registered under the given name."""

    default_code = "UNKNOWN_IDENTITY"

    def __init__(self, name: str) -> None:
        super().__init__(f"unknown identity: {name!r}", details={"name": name})
        self.name = name


class ValidationError(FactorClientError):
    """A payload does not match its schema.

    Attributes:
        field: Dotted path of the offending field ("" for the payload itself).
        reason: Short description of the mismatch.
    """

    default_code = "VALIDATION"

    def __init__(self, field: str, reason: str, *, error_code: str | None = None) -> None:
        label = field or "<payload>"
        super().__init__(
            f"{label}: {reason}",
            error_code=error_code,
            details={"field": field, "reason": reason},
        )
        self.field = field
        self.reason = reason


class UnknownFieldError(ValidationError):
    """A payload carries a field the schema does not declare."""

    default_code = "UNKNOWN_FIELD"

    def __init__(self, field: str, schema_name: str) -> None:
        super().__init__(field, f"field is not declared by {schema_name}")
        self.schema_name = schema_name


class NetworkError(FactorClientError):
    """Transport-level failure talking to the ledger.

    Attributes:
        url: Request URL.
        status_code: HTTP status when the server answered, else None.
    """

    default_code = "NETWORK"

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if url is not None:
            details["url"] = url
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, error_code=error_code, details=details)
        self.url = url
        self.status_code = status_code


class CommitTimeoutError(FactorClientError, TimeoutError):
    """A strict-mode poll reached its deadline without a terminal status."""

    default_code = "COMMIT_TIMEOUT"

    def __init__(self, tx_id: str, timeout: float) -> None:
        super().__init__(
            f"transaction {tx_id} not committed within {timeout}s",
            details={"tx_id": tx_id, "timeout": timeout},
        )
        self.tx_id = tx_id
        self.timeout = timeout


class ProofInvalidError(FactorClientError):
    """Cryptographic verification of a read response failed.

    Attributes:
        layer: Which layer failed ("object", "table", "history", "decode").
    """

    default_code = "PROOF_INVALID"

    def __init__(self, layer: str, reason: str) -> None:
        super().__init__(
            f"{layer} proof invalid: {reason}",
            details={"layer": layer, "reason": reason},
        )
        self.layer = layer
        self.reason = reason
