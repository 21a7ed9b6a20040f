"""
Typed schema descriptors.

A ``MessageSchema`` is built once, at registry load time, from a JSON
descriptor. Each field carries a ``FieldKind`` — a closed tag that
decides which value codec (if any) applies to it:

    SCALAR      protobuf scalar (string, uint64, bool, ...), passed through
    MESSAGE     nested message, handled recursively
    ENUM        closed enum, name <-> ordinal
    TIMESTAMP   google.protobuf.Timestamp, datetime <-> (seconds, nanos)
    HASH        exonum.Hash, hex <-> 32 raw bytes
    PUBLIC_KEY  exonum.PublicKey, hex <-> 32 raw bytes

Codec dispatch is a table lookup on the kind, never a string compare
at encode time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from factor_client.errors import ValidationError

TIMESTAMP_TYPE = "google.protobuf.Timestamp"
HASH_TYPE = "exonum.Hash"
PUBLIC_KEY_TYPE = "exonum.PublicKey"


class FieldKind(StrEnum):
    SCALAR = "scalar"
    MESSAGE = "message"
    ENUM = "enum"
    TIMESTAMP = "timestamp"
    HASH = "hash"
    PUBLIC_KEY = "public_key"


# Kinds whose values go through a value codec.
CODEC_KINDS = frozenset({FieldKind.ENUM, FieldKind.TIMESTAMP, FieldKind.HASH, FieldKind.PUBLIC_KEY})

# Well-known message types that map to a codec kind instead of MESSAGE.
SPECIAL_TYPES: dict[str, FieldKind] = {
    TIMESTAMP_TYPE: FieldKind.TIMESTAMP,
    HASH_TYPE: FieldKind.HASH,
    PUBLIC_KEY_TYPE: FieldKind.PUBLIC_KEY,
}

# Protobuf scalar type names accepted in descriptors.
SCALAR_TYPES = frozenset({
    "double", "float",
    "int32", "int64", "uint32", "uint64", "sint32", "sint64",
    "fixed32", "fixed64", "sfixed32", "sfixed64",
    "bool", "string", "bytes",
})

INTEGER_RANGES: dict[str, tuple[int, int]] = {
    "int32": (-(2**31), 2**31 - 1),
    "sint32": (-(2**31), 2**31 - 1),
    "sfixed32": (-(2**31), 2**31 - 1),
    "int64": (-(2**63), 2**63 - 1),
    "sint64": (-(2**63), 2**63 - 1),
    "sfixed64": (-(2**63), 2**63 - 1),
    "uint32": (0, 2**32 - 1),
    "fixed32": (0, 2**32 - 1),
    "uint64": (0, 2**64 - 1),
    "fixed64": (0, 2**64 - 1),
}


@dataclass(frozen=True)
class FieldSpec:
    """One field of a message schema.

    Attributes:
        name: Field name as it appears in payloads.
        number: Protobuf field number.
        kind: Codec tag for the field.
        type_name: Scalar type name, or the fully qualified message/enum name.
        repeated: True for list-valued fields.
        optional: True if the field may be omitted from a payload.
            Repeated fields are always optional.
    """

    name: str
    number: int
    kind: FieldKind
    type_name: str
    repeated: bool = False
    optional: bool = False

    @property
    def needs_codec(self) -> bool:
        return self.kind in CODEC_KINDS

    @property
    def required(self) -> bool:
        return not (self.optional or self.repeated)


@dataclass(frozen=True)
class MessageSchema:
    """Wire shape of one message type."""

    full_name: str
    fields: tuple[FieldSpec, ...]
    _by_name: dict[str, FieldSpec] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_by_name", {f.name: f for f in self.fields})

    @property
    def package(self) -> str:
        return self.full_name.rpartition(".")[0]

    @property
    def name(self) -> str:
        return self.full_name.rpartition(".")[2]

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def has_field(self, name: str) -> bool:
        return name in self._by_name

    def get_field(self, name: str) -> FieldSpec:
        """Look up a field by name.

        Raises:
            KeyError: If the schema has no such field.
        """
        return self._by_name[name]


@dataclass(frozen=True)
class EnumSchema:
    """A closed enum: symbolic names in ordinal order, ordinal 0 first.

    Names are stored in their canonical casing; lookups by name are
    case-insensitive.
    """

    full_name: str
    values: tuple[str, ...]
    _ordinals: dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.values:
            raise ValidationError(self.full_name, "enum must declare at least one value")
        object.__setattr__(
            self, "_ordinals", {v.upper(): i for i, v in enumerate(self.values)}
        )

    @property
    def name(self) -> str:
        return self.full_name.rpartition(".")[2]

    @property
    def default_name(self) -> str:
        return self.values[0]

    def ordinal(self, name: str) -> int | None:
        """Ordinal for a (case-insensitive) name, or None if unknown."""
        return self._ordinals.get(name.upper())

    def name_of(self, ordinal: int) -> str | None:
        """Canonical name for an ordinal, or None if out of range."""
        if 0 <= ordinal < len(self.values):
            return self.values[ordinal]
        return None
