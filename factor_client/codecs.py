"""
Value codecs — native domain values <-> wire values.

Every codec is a pair of inverse functions::

    decode(encode(x)) == x    for every representable x

Codecs:
    - TimestampCodec: datetime <-> WireTimestamp(seconds, nanos)
    - HexBytesCodec:  lowercase hex <-> raw bytes (Hash, PublicKey)
    - EnumCodec:      case-insensitive name <-> ordinal

Enum leniency:
    ``EnumCodec.encode`` maps an unrecognized name to ordinal 0
    ("unknown") instead of failing, because the ledger's own clients
    always did. The substitution is logged as ``enum_unknown_name`` at
    WARNING so it never goes unnoticed. Pass ``strict=True`` to turn
    it into a ValidationError instead.
"""

from __future__ import annotations

import binascii
import re
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import NamedTuple

import structlog

from factor_client.errors import ValidationError
from factor_client.schema.descriptor import EnumSchema

log = structlog.get_logger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NANOS_PER_MILLI = 1_000_000
_ISO_FRACTION = re.compile(r"^(?P<base>[^.,]*?T\d{2}:\d{2}:\d{2})(?:[.,](?P<fraction>\d{1,9}))?(?P<zone>.*)$")


class WireTimestamp(NamedTuple):
    """google.protobuf.Timestamp wire form. ``0 <= nanos < 1e9``."""

    seconds: int
    nanos: int


# =========================================================================
# Timestamp
# =========================================================================


class TimestampCodec:
    """Absolute time <-> (seconds, nanos).

    The default codec has millisecond resolution: ``encode`` takes epoch
    milliseconds (sub-millisecond precision is dropped), floors to whole
    seconds and keeps the millisecond remainder as nanoseconds. Pre-epoch
    times floor downwards, so nanos is never negative. ``decode``
    recombines them into a UTC datetime.

    With ``exact=True`` nothing is dropped: datetimes keep their
    microseconds, ISO strings keep up to nine fractional digits, and a
    ``{"seconds": ..., "nanos": ...}`` object is taken as-is. This is the
    mode used to reproduce stored values byte for byte.
    """

    def __init__(self, *, exact: bool = False) -> None:
        self.exact = exact

    def encode(self, value: datetime | str | Mapping[str, int]) -> WireTimestamp:
        if self.exact:
            return self._encode_exact(value)
        when = self._coerce(value)
        delta = when - _EPOCH
        millis = (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000
        seconds = millis // 1000
        return WireTimestamp(seconds=seconds, nanos=(millis - seconds * 1000) * _NANOS_PER_MILLI)

    def decode(self, wire: WireTimestamp | tuple[int, int]) -> datetime:
        seconds, nanos = wire
        if self.exact:
            return _EPOCH + timedelta(seconds=seconds, microseconds=nanos // 1000)
        millis = seconds * 1000 + nanos // _NANOS_PER_MILLI
        return _EPOCH + timedelta(milliseconds=millis)

    def _encode_exact(self, value: datetime | str | Mapping[str, int]) -> WireTimestamp:
        if isinstance(value, Mapping):
            seconds, nanos = value.get("seconds", 0), value.get("nanos", 0)
            if not all(isinstance(v, int) and not isinstance(v, bool) for v in (seconds, nanos)):
                raise ValidationError("", "timestamp seconds and nanos must be integers")
            if not 0 <= nanos < 1_000_000_000:
                raise ValidationError("", f"timestamp nanos out of range: {nanos}")
            return WireTimestamp(seconds=seconds, nanos=nanos)
        match = _ISO_FRACTION.match(value.strip()) if isinstance(value, str) else None
        if match is not None:
            when = self._coerce(match.group("base") + match.group("zone"))
            nanos = int((match.group("fraction") or "").ljust(9, "0"))
        else:
            when = self._coerce(value)
            nanos = when.microsecond * 1000
        delta = when.replace(microsecond=0) - _EPOCH
        return WireTimestamp(seconds=delta.days * 86_400 + delta.seconds, nanos=nanos)

    @staticmethod
    def _coerce(value: datetime | str) -> datetime:
        if isinstance(value, str):
            text = value.strip()
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            try:
                value = datetime.fromisoformat(text)
            except ValueError as exc:
                raise ValidationError("", f"not an ISO-8601 timestamp: {value!r}") from exc
        if not isinstance(value, datetime):
            raise ValidationError("", f"expected datetime or ISO-8601 string, got {type(value).__name__}")
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# =========================================================================
# Hex bytes (Hash, PublicKey)
# =========================================================================


class HexBytesCodec:
    """Lowercase hex string <-> raw bytes of a fixed size."""

    def __init__(self, size: int = 32, label: str = "hash") -> None:
        self.size = size
        self.label = label

    def encode(self, value: str) -> bytes:
        if not isinstance(value, str):
            raise ValidationError("", f"{self.label} must be a hex string, got {type(value).__name__}")
        try:
            raw = binascii.unhexlify(value)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError("", f"{self.label} is not valid hex: {value!r}") from exc
        if len(raw) != self.size:
            raise ValidationError(
                "", f"{self.label} must be {self.size} bytes, got {len(raw)}"
            )
        return raw

    def decode(self, wire: bytes) -> str:
        return bytes(wire).hex()


# =========================================================================
# Enum
# =========================================================================


class EnumCodec:
    """Symbolic name <-> ordinal for one closed enum."""

    def __init__(self, schema: EnumSchema, *, strict: bool = False) -> None:
        self.schema = schema
        self.strict = strict

    def encode(self, value: str) -> int:
        if not isinstance(value, str):
            raise ValidationError("", f"{self.schema.name} value must be a string, got {type(value).__name__}")
        ordinal = self.schema.ordinal(value)
        if ordinal is not None:
            return ordinal
        if self.strict:
            raise ValidationError("", f"unknown {self.schema.name} value {value!r}")
        log.warning(
            "enum_unknown_name",
            enum=self.schema.full_name,
            value=value,
            substituted=self.schema.default_name,
        )
        return 0

    def decode(self, wire: int) -> str:
        name = self.schema.name_of(wire)
        if name is None:
            log.warning("enum_unknown_ordinal", enum=self.schema.full_name, ordinal=wire)
            return self.schema.default_name
        return name


TIMESTAMP = TimestampCodec()
EXACT_TIMESTAMP = TimestampCodec(exact=True)
HASH = HexBytesCodec(32, "hash")
PUBLIC_KEY = HexBytesCodec(32, "public key")
