"""
Identity registry — named Ed25519 keypairs used to sign transactions.

The registry is an explicit object, not module state: a test scenario
creates one, fills it, and calls ``remove_all()`` when done. All
operations take an internal lock so concurrent scenarios may share a
registry.

Secret keys never appear in ``repr``, logs or error details.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from factor_client.crypto import private_key_from_hex, public_key_hex
from factor_client.errors import UnknownIdentityError, ValidationError


@dataclass(frozen=True)
class Identity:
    """A named signing identity.

    Attributes:
        name: Registry name (e.g. "root").
        public_key: Lowercase hex, 32 bytes.
        secret_key: Hex seed (32 bytes) or ``seed || pubkey`` (64 bytes).
    """

    name: str
    public_key: str
    secret_key: str = field(repr=False)


class IdentityRegistry:
    """Thread-safe name -> Identity map."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._identities: dict[str, Identity] = {}

    def add(self, name: str, public_key: str, secret_key: str) -> Identity:
        """Register (or overwrite) an identity.

        Raises:
            ValidationError: If the secret key is malformed or does not
                belong to ``public_key``.
        """
        try:
            derived = public_key_hex(private_key_from_hex(secret_key))
        except ValueError as exc:
            raise ValidationError("secret_key", f"invalid secret key for {name!r}: {exc}") from exc
        if derived != public_key.lower():
            raise ValidationError("public_key", f"public key does not match secret key for {name!r}")
        identity = Identity(name=name, public_key=derived, secret_key=secret_key)
        with self._lock:
            self._identities[name] = identity
        return identity

    def resolve(self, name: str) -> Identity:
        with self._lock:
            try:
                return self._identities[name]
            except KeyError:
                raise UnknownIdentityError(name) from None

    def remove_all(self) -> None:
        with self._lock:
            self._identities.clear()

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._identities)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._identities

    def __len__(self) -> int:
        with self._lock:
            return len(self._identities)
