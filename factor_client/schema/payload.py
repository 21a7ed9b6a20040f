"""
Payload codec — native payload dicts <-> wire dicts <-> protobuf bytes.

Three representations of the same message:

    native   {"id": "U1", "created": datetime(...), "status": "active"}
    wire     {"id": "U1", "created": WireTimestamp(...), "status": 1}
    bytes    deterministic protobuf serialization of the wire dict

``to_wire`` / ``from_wire`` apply the value codecs field by field,
following the ``MessageSchema`` and recursing into nested and repeated
fields. ``validate`` checks a wire dict against its schema. ``serialize``
and ``deserialize`` go all the way to and from bytes.

``None`` values in a native payload are treated as absent.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from google.protobuf.message import DecodeError, Message

from factor_client.codecs import EXACT_TIMESTAMP, HASH, PUBLIC_KEY, TIMESTAMP, EnumCodec, WireTimestamp
from factor_client.errors import UnknownFieldError, ValidationError
from factor_client.schema.descriptor import INTEGER_RANGES, FieldKind, FieldSpec, MessageSchema
from factor_client.schema.registry import SchemaRegistry

_HEX_CODECS = {FieldKind.HASH: HASH, FieldKind.PUBLIC_KEY: PUBLIC_KEY}
_DIRECT_KINDS = frozenset({FieldKind.SCALAR, FieldKind.ENUM})


def _join(path: str, name: str | int) -> str:
    if isinstance(name, int):
        return f"{path}[{name}]"
    return f"{path}.{name}" if path else name


class PayloadCodec:
    """Schema-driven conversion between payload representations.

    Args:
        registry: Registry that resolves message and enum names.
        strict_enums: Reject unknown enum names instead of mapping them
            to ordinal 0.
        exact_timestamps: Keep timestamps at full nanosecond precision
            instead of truncating to milliseconds. Used when stored
            values must be re-encoded exactly.
    """

    def __init__(
        self, registry: SchemaRegistry, *, strict_enums: bool = False, exact_timestamps: bool = False
    ) -> None:
        self.registry = registry
        self.strict_enums = strict_enums
        self.timestamps = EXACT_TIMESTAMP if exact_timestamps else TIMESTAMP
        self._enum_codecs: dict[str, EnumCodec] = {}

    def _schema(self, schema: MessageSchema | str) -> MessageSchema:
        if isinstance(schema, MessageSchema):
            return schema
        return self.registry.resolve(schema)

    def _enum_codec(self, enum_name: str) -> EnumCodec:
        codec = self._enum_codecs.get(enum_name)
        if codec is None:
            codec = EnumCodec(self.registry.resolve_enum(enum_name), strict=self.strict_enums)
            self._enum_codecs[enum_name] = codec
        return codec

    # =====================================================================
    # native <-> wire
    # =====================================================================

    def to_wire(self, schema: MessageSchema | str, payload: Mapping[str, Any], *, path: str = "") -> dict[str, Any]:
        """Encode codec-bearing fields; other fields pass through untouched.

        Fields the schema does not declare are passed through so that
        ``validate`` can report them.
        """
        schema = self._schema(schema)
        if not isinstance(payload, Mapping):
            raise ValidationError(path, f"expected an object, got {type(payload).__name__}")
        wire: dict[str, Any] = {}
        for name, value in payload.items():
            if value is None:
                continue
            if not schema.has_field(name):
                wire[name] = value
                continue
            spec = schema.get_field(name)
            field_path = _join(path, name)
            if spec.repeated and isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
                wire[name] = [
                    self._encode_value(spec, item, _join(field_path, i)) for i, item in enumerate(value)
                ]
            else:
                wire[name] = self._encode_value(spec, value, field_path)
        return wire

    def _encode_value(self, spec: FieldSpec, value: Any, path: str) -> Any:
        try:
            if spec.kind is FieldKind.SCALAR:
                return value
            if spec.kind is FieldKind.MESSAGE:
                return self.to_wire(spec.type_name, value, path=path)
            if spec.kind is FieldKind.TIMESTAMP:
                return self.timestamps.encode(value)
            if spec.kind is FieldKind.ENUM:
                return self._enum_codec(spec.type_name).encode(value)
            return _HEX_CODECS[spec.kind].encode(value)
        except ValidationError as exc:
            if exc.field or not path:
                raise
            raise ValidationError(path, exc.reason) from exc

    def from_wire(self, schema: MessageSchema | str, wire: Mapping[str, Any]) -> dict[str, Any]:
        """Decode a wire dict back into native values."""
        schema = self._schema(schema)
        native: dict[str, Any] = {}
        for name, value in wire.items():
            spec = schema.get_field(name)
            if spec.repeated:
                native[name] = [self._decode_value(spec, item) for item in value]
            else:
                native[name] = self._decode_value(spec, value)
        return native

    def _decode_value(self, spec: FieldSpec, value: Any) -> Any:
        if spec.kind is FieldKind.SCALAR:
            return value
        if spec.kind is FieldKind.MESSAGE:
            return self.from_wire(spec.type_name, value)
        if spec.kind is FieldKind.TIMESTAMP:
            return self.timestamps.decode(value)
        if spec.kind is FieldKind.ENUM:
            return self._enum_codec(spec.type_name).decode(value)
        return _HEX_CODECS[spec.kind].decode(value)

    # =====================================================================
    # Validation
    # =====================================================================

    def validate(self, schema: MessageSchema | str, wire: Mapping[str, Any], *, path: str = "") -> None:
        """Check a wire dict against its schema.

        Raises:
            UnknownFieldError: A field is not declared by the schema.
            ValidationError: A required field is missing, a value has the
                wrong cardinality, or a scalar has the wrong type.
        """
        schema = self._schema(schema)
        for name in wire:
            if not schema.has_field(name):
                raise UnknownFieldError(_join(path, name), schema.full_name)

        for spec in schema.fields:
            field_path = _join(path, spec.name)
            if spec.name not in wire:
                if spec.required:
                    raise ValidationError(field_path, "required field is missing")
                continue
            value = wire[spec.name]
            if spec.repeated:
                if not isinstance(value, (list, tuple)):
                    raise ValidationError(field_path, "expected a list of values")
                for i, item in enumerate(value):
                    self._check_value(spec, item, _join(field_path, i))
            else:
                if isinstance(value, list):
                    raise ValidationError(field_path, "expected a single value, got a list")
                self._check_value(spec, value, field_path)

    def _check_value(self, spec: FieldSpec, value: Any, path: str) -> None:
        kind = spec.kind
        if kind is FieldKind.SCALAR:
            _check_scalar(spec.type_name, value, path)
        elif kind is FieldKind.ENUM:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(path, f"expected an enum ordinal, got {type(value).__name__}")
        elif kind is FieldKind.TIMESTAMP:
            if not (
                isinstance(value, tuple)
                and len(value) == 2
                and all(isinstance(v, int) and not isinstance(v, bool) for v in value)
                and 0 <= value[1] < 1_000_000_000
            ):
                raise ValidationError(path, "expected a timestamp")
        elif kind in _HEX_CODECS:
            if not isinstance(value, (bytes, bytearray)) or len(value) != _HEX_CODECS[kind].size:
                raise ValidationError(path, f"expected {_HEX_CODECS[kind].size} raw bytes")
        else:
            if not isinstance(value, Mapping):
                raise ValidationError(path, f"expected an object, got {type(value).__name__}")
            self.validate(spec.type_name, value, path=path)

    # =====================================================================
    # Protobuf bytes
    # =====================================================================

    def serialize(self, schema: MessageSchema | str, payload: Mapping[str, Any]) -> bytes:
        """Encode, validate and serialize a native payload deterministically."""
        schema = self._schema(schema)
        wire = self.to_wire(schema, payload)
        self.validate(schema, wire)
        message = self.registry.message_class(schema.full_name)()
        self._fill(message, schema, wire)
        return message.SerializeToString(deterministic=True)

    def deserialize(self, schema: MessageSchema | str, data: bytes) -> dict[str, Any]:
        """Parse protobuf bytes into a native dict.

        Scalars and enums are always present (with their defaults);
        message-typed fields appear only when set.

        Raises:
            ValidationError: If ``data`` is not a valid encoding.
        """
        schema = self._schema(schema)
        message = self.registry.message_class(schema.full_name)()
        try:
            message.ParseFromString(bytes(data))
        except DecodeError as exc:
            raise ValidationError("", f"cannot decode {schema.full_name}: {exc}") from exc
        return self.from_wire(schema, self._read(message, schema))

    def _fill(self, message: Message, schema: MessageSchema, wire: Mapping[str, Any]) -> None:
        for spec in schema.fields:
            if spec.name not in wire:
                continue
            value = wire[spec.name]
            if spec.repeated:
                container = getattr(message, spec.name)
                if spec.kind in _DIRECT_KINDS:
                    container.extend(value)
                else:
                    for item in value:
                        self._fill_message(container.add(), spec, item)
            elif spec.kind in _DIRECT_KINDS:
                setattr(message, spec.name, value)
            else:
                sub = getattr(message, spec.name)
                sub.SetInParent()
                self._fill_message(sub, spec, value)

    def _fill_message(self, sub: Any, spec: FieldSpec, value: Any) -> None:
        if spec.kind is FieldKind.TIMESTAMP:
            sub.seconds, sub.nanos = value
        elif spec.kind in _HEX_CODECS:
            sub.data = bytes(value)
        else:
            self._fill(sub, self.registry.resolve(spec.type_name), value)

    def _read(self, message: Any, schema: MessageSchema) -> dict[str, Any]:
        wire: dict[str, Any] = {}
        for spec in schema.fields:
            value = getattr(message, spec.name)
            if spec.repeated:
                if spec.kind in _DIRECT_KINDS:
                    wire[spec.name] = list(value)
                else:
                    wire[spec.name] = [self._read_message(spec, item) for item in value]
            elif spec.kind in _DIRECT_KINDS:
                wire[spec.name] = value
            elif message.HasField(spec.name):
                wire[spec.name] = self._read_message(spec, value)
        return wire

    def _read_message(self, spec: FieldSpec, sub: Any) -> Any:
        if spec.kind is FieldKind.TIMESTAMP:
            return WireTimestamp(sub.seconds, sub.nanos)
        if spec.kind in _HEX_CODECS:
            return bytes(sub.data)
        return self._read(sub, self.registry.resolve(spec.type_name))


def _check_scalar(type_name: str, value: Any, path: str) -> None:
    if type_name == "string":
        ok = isinstance(value, str)
    elif type_name == "bytes":
        ok = isinstance(value, (bytes, bytearray))
    elif type_name == "bool":
        ok = isinstance(value, bool)
    elif type_name in ("double", "float"):
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
    else:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(path, f"expected {type_name}, got {type(value).__name__}")
        low, high = INTEGER_RANGES[type_name]
        if not low <= value <= high:
            raise ValidationError(path, f"{value} is out of range for {type_name}")
        return
    if not ok:
        raise ValidationError(path, f"expected {type_name}, got {type(value).__name__}")
