"""
Schema registry — message shapes and enums for the ledger service.

Descriptors are JSON documents, one per file, loaded from a directory::

    {
      "package": "basis.user",
      "enums": [
        {"name": "Status", "values": ["UNKNOWN", "ACTIVE", "RETIRED"]}
      ],
      "messages": [
        {"name": "TxCreate", "fields": [
          {"name": "id",      "number": 1, "type": "string"},
          {"name": "pubkey",  "number": 2, "type": "exonum.PublicKey"},
          {"name": "roles",   "number": 3, "type": "string", "repeated": true},
          {"name": "created", "number": 7, "type": "google.protobuf.Timestamp",
           "optional": true}
        ]}
      ]
    }

Each document is validated against ``DESCRIPTOR_SCHEMA`` with
jsonschema, type references are resolved with protobuf scoping rules,
and the result is compiled into a private protobuf ``DescriptorPool``
from which message classes are produced.

Loading is all-or-nothing: the new state is built on the side and only
swapped in once every document has been validated, resolved and
compiled. Any failure raises ``SchemaLoadError`` and leaves the
registry exactly as it was.

Built-in types, always present:
    - ``exonum.Hash``            (bytes data = 1)
    - ``exonum.PublicKey``       (bytes data = 1)
    - ``google.protobuf.Timestamp``
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jsonschema  # type: ignore[import-untyped]
import structlog
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory, timestamp_pb2
from google.protobuf.message import Message

from factor_client.errors import SchemaLoadError, UnknownSchemaError
from factor_client.schema.descriptor import (
    SCALAR_TYPES,
    SPECIAL_TYPES,
    EnumSchema,
    FieldKind,
    FieldSpec,
    MessageSchema,
)

log = structlog.get_logger(__name__)

_IDENT = "^[A-Za-z_][A-Za-z0-9_]*$"

DESCRIPTOR_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["package"],
    "additionalProperties": False,
    "properties": {
        "package": {"type": "string", "pattern": r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$"},
        "enums": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name", "values"],
                "additionalProperties": False,
                "properties": {
                    "name": {"type": "string", "pattern": _IDENT},
                    "values": {
                        "type": "array",
                        "minItems": 1,
                        "items": {"type": "string", "pattern": _IDENT},
                    },
                },
            },
        },
        "messages": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name", "fields"],
                "additionalProperties": False,
                "properties": {
                    "name": {"type": "string", "pattern": _IDENT},
                    "fields": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["name", "number", "type"],
                            "additionalProperties": False,
                            "properties": {
                                "name": {"type": "string", "pattern": _IDENT},
                                "number": {"type": "integer", "minimum": 1, "maximum": 536870911},
                                "type": {"type": "string", "minLength": 1},
                                "repeated": {"type": "boolean"},
                                "optional": {"type": "boolean"},
                            },
                        },
                    },
                },
            },
        },
    },
}

_FDP = descriptor_pb2.FieldDescriptorProto

_SCALAR_PB_TYPES: dict[str, int] = {
    "double": _FDP.TYPE_DOUBLE,
    "float": _FDP.TYPE_FLOAT,
    "int32": _FDP.TYPE_INT32,
    "int64": _FDP.TYPE_INT64,
    "uint32": _FDP.TYPE_UINT32,
    "uint64": _FDP.TYPE_UINT64,
    "sint32": _FDP.TYPE_SINT32,
    "sint64": _FDP.TYPE_SINT64,
    "fixed32": _FDP.TYPE_FIXED32,
    "fixed64": _FDP.TYPE_FIXED64,
    "sfixed32": _FDP.TYPE_SFIXED32,
    "sfixed64": _FDP.TYPE_SFIXED64,
    "bool": _FDP.TYPE_BOOL,
    "string": _FDP.TYPE_STRING,
    "bytes": _FDP.TYPE_BYTES,
}

_EXONUM_FILE = "exonum/crypto.proto"
_TIMESTAMP_FILE = timestamp_pb2.DESCRIPTOR.name


def _exonum_file() -> descriptor_pb2.FileDescriptorProto:
    fdp = descriptor_pb2.FileDescriptorProto(name=_EXONUM_FILE, package="exonum", syntax="proto3")
    for name in ("Hash", "PublicKey"):
        msg = fdp.message_type.add(name=name)
        msg.field.add(name="data", number=1, type=_FDP.TYPE_BYTES, label=_FDP.LABEL_OPTIONAL)
    return fdp


_BUILTIN_OWNERS: dict[str, str] = {
    "exonum.Hash": _EXONUM_FILE,
    "exonum.PublicKey": _EXONUM_FILE,
    "google.protobuf.Timestamp": _TIMESTAMP_FILE,
}


@dataclass(frozen=True)
class _Document:
    """A validated descriptor document and where it came from."""

    source: str
    file_name: str
    body: dict[str, Any]


@dataclass
class _State:
    documents: list[_Document]
    messages: dict[str, MessageSchema]
    enums: dict[str, EnumSchema]
    pool: descriptor_pool.DescriptorPool


class SchemaRegistry:
    """Resolves logical schema names to typed descriptors and message classes."""

    def __init__(self) -> None:
        self._state = _build_state([])
        self._classes: dict[str, type[Message]] = {}

    # -----------------------------------------------------------------
    # Loading
    # -----------------------------------------------------------------

    @classmethod
    def from_directory(cls, path: str | Path) -> SchemaRegistry:
        registry = cls()
        registry.load_directory(path)
        return registry

    def load_directory(self, path: str | Path) -> None:
        """Load every ``*.json`` descriptor in ``path`` (non-recursive).

        Raises:
            SchemaLoadError: On any problem; the registry is unchanged.
        """
        directory = Path(path)
        if not directory.is_dir():
            raise SchemaLoadError(
                f"schema directory not found: {directory}", details={"path": str(directory)}
            )
        documents = []
        for file in sorted(directory.glob("*.json")):
            if file.name.startswith("."):
                continue
            try:
                body = json.loads(file.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                raise SchemaLoadError(
                    f"cannot read schema descriptor {file.name}: {exc}",
                    details={"path": str(file)},
                ) from exc
            documents.append(_validate_document(body, source=str(file), file_name=f"{file.stem}.proto"))
        if not documents:
            raise SchemaLoadError(
                f"no schema descriptors in {directory}", details={"path": str(directory)}
            )
        self._install(documents)

    def add_descriptor(self, body: Mapping[str, Any], *, name: str | None = None) -> None:
        """Register one descriptor document given as a dict.

        Args:
            body: Descriptor document.
            name: Logical file name; defaults to the package name.
        """
        body = dict(body)
        stem = name or str(body.get("package", "inline"))
        self._install([_validate_document(body, source=f"<{stem}>", file_name=f"{stem}.proto")])

    def _install(self, documents: Iterable[_Document]) -> None:
        state = _build_state(self._state.documents + list(documents))
        self._state = state
        self._classes = {}
        log.debug(
            "schema_loaded",
            files=len(state.documents),
            messages=len(state.messages),
            enums=len(state.enums),
        )

    # -----------------------------------------------------------------
    # Lookup
    # -----------------------------------------------------------------

    def resolve(self, schema_name: str) -> MessageSchema:
        """Typed descriptor for a message.

        Raises:
            UnknownSchemaError: If no message has that full name.
        """
        try:
            return self._state.messages[schema_name]
        except KeyError:
            raise UnknownSchemaError(schema_name) from None

    def resolve_enum(self, enum_name: str) -> EnumSchema:
        try:
            return self._state.enums[enum_name]
        except KeyError:
            raise UnknownSchemaError(enum_name) from None

    def __contains__(self, schema_name: object) -> bool:
        return schema_name in self._state.messages

    @property
    def schema_names(self) -> list[str]:
        return sorted(self._state.messages)

    def message_class(self, schema_name: str) -> type[Message]:
        """Protobuf message class compiled from the registry's pool."""
        cls = self._classes.get(schema_name)
        if cls is None:
            self.resolve(schema_name)
            descriptor = self._state.pool.FindMessageTypeByName(schema_name)
            cls = message_factory.GetMessageClass(descriptor)
            self._classes[schema_name] = cls
        return cls


# =========================================================================
# Document validation
# =========================================================================


def _validate_document(body: Any, *, source: str, file_name: str) -> _Document:
    try:
        jsonschema.validate(instance=body, schema=DESCRIPTOR_SCHEMA)
    except jsonschema.ValidationError as exc:
        where = "/".join(str(p) for p in exc.absolute_path)
        raise SchemaLoadError(
            f"{source}: invalid descriptor at '{where}': {exc.message}",
            details={"source": source, "path": where},
        ) from exc

    for message in body.get("messages", []):
        names = [f["name"] for f in message["fields"]]
        numbers = [f["number"] for f in message["fields"]]
        if len(set(names)) != len(names) or len(set(numbers)) != len(numbers):
            raise SchemaLoadError(
                f"{source}: message {message['name']} has duplicate field names or numbers",
                details={"source": source, "message": message["name"]},
            )
    for enum in body.get("enums", []):
        upper = [v.upper() for v in enum["values"]]
        if len(set(upper)) != len(upper):
            raise SchemaLoadError(
                f"{source}: enum {enum['name']} has duplicate values",
                details={"source": source, "enum": enum["name"]},
            )
    return _Document(source=source, file_name=file_name, body=body)


# =========================================================================
# State construction
# =========================================================================


def _candidates(ref: str, package: str) -> list[str]:
    """Protobuf scope resolution: innermost package first, then outwards."""
    if ref.startswith("."):
        return [ref[1:]]
    parts = package.split(".") if package else []
    return [".".join(parts[:i] + [ref]) for i in range(len(parts), -1, -1)]


def _build_state(documents: list[_Document]) -> _State:
    # 1. Collect declarations and their owning files.
    owners: dict[str, str] = dict(_BUILTIN_OWNERS)
    enum_decls: dict[str, list[str]] = {}
    message_decls: dict[str, tuple[_Document, dict[str, Any]]] = {}
    file_names: set[str] = set()

    for doc in documents:
        if doc.file_name in file_names or doc.file_name in (_EXONUM_FILE, _TIMESTAMP_FILE):
            raise SchemaLoadError(
                f"{doc.source}: duplicate descriptor file {doc.file_name}",
                details={"source": doc.source},
            )
        file_names.add(doc.file_name)
        package = doc.body["package"]
        for enum in doc.body.get("enums", []):
            full = f"{package}.{enum['name']}"
            _claim(owners, full, doc)
            enum_decls[full] = list(enum["values"])
        for message in doc.body.get("messages", []):
            full = f"{package}.{message['name']}"
            _claim(owners, full, doc)
            message_decls[full] = (doc, message)

    # 2. Resolve field types into typed FieldSpecs.
    messages: dict[str, MessageSchema] = {}
    resolved_types: dict[tuple[str, str], str] = {}
    dependencies: dict[str, set[str]] = {doc.file_name: set() for doc in documents}

    for full, (doc, message) in message_decls.items():
        package = doc.body["package"]
        specs = []
        for f in message["fields"]:
            kind, type_name = _resolve_field_type(f["type"], package, owners, enum_decls, doc)
            if kind is not FieldKind.SCALAR:
                owner = owners[type_name]
                if owner != doc.file_name:
                    dependencies[doc.file_name].add(owner)
            resolved_types[(full, f["name"])] = type_name
            specs.append(FieldSpec(
                name=f["name"],
                number=f["number"],
                kind=kind,
                type_name=type_name,
                repeated=bool(f.get("repeated", False)),
                optional=bool(f.get("optional", False)),
            ))
        messages[full] = MessageSchema(full_name=full, fields=tuple(specs))

    enums = {full: EnumSchema(full_name=full, values=tuple(values)) for full, values in enum_decls.items()}

    # 3. Compile into a fresh descriptor pool, dependencies first.
    pool = descriptor_pool.DescriptorPool()
    try:
        pool.AddSerializedFile(timestamp_pb2.DESCRIPTOR.serialized_pb)
        pool.Add(_exonum_file())
        by_file = {doc.file_name: doc for doc in documents}
        for file_name in _topological(dependencies):
            doc = by_file[file_name]
            pool.Add(_file_proto(doc, sorted(dependencies[file_name]), messages, enums))
    except SchemaLoadError:
        raise
    except Exception as exc:
        # The pure-python, C++ and upb backends raise different types here.
        raise SchemaLoadError(f"protobuf rejected descriptors: {exc}") from exc

    return _State(documents=list(documents), messages=messages, enums=enums, pool=pool)


def _claim(owners: dict[str, str], full: str, doc: _Document) -> None:
    if full in owners:
        raise SchemaLoadError(
            f"{doc.source}: {full} is already declared in {owners[full]}",
            details={"source": doc.source, "name": full},
        )
    owners[full] = doc.file_name


def _resolve_field_type(
    ref: str,
    package: str,
    owners: Mapping[str, str],
    enum_decls: Mapping[str, list[str]],
    doc: _Document,
) -> tuple[FieldKind, str]:
    if ref in SCALAR_TYPES:
        return FieldKind.SCALAR, ref
    for candidate in _candidates(ref, package):
        if candidate in SPECIAL_TYPES:
            return SPECIAL_TYPES[candidate], candidate
        if candidate in owners:
            if candidate in enum_decls:
                return FieldKind.ENUM, candidate
            return FieldKind.MESSAGE, candidate
    raise SchemaLoadError(
        f"{doc.source}: unresolved type {ref!r} in package {package}",
        details={"source": doc.source, "type": ref},
    )


def _topological(dependencies: Mapping[str, set[str]]) -> list[str]:
    """Order files so each comes after the files it depends on."""
    order: list[str] = []
    state: dict[str, int] = {}  # 1 = visiting, 2 = done

    def visit(name: str, trail: tuple[str, ...]) -> None:
        mark = state.get(name)
        if mark == 2:
            return
        if mark == 1:
            cycle = " -> ".join(trail + (name,))
            raise SchemaLoadError(f"descriptor dependency cycle: {cycle}", details={"cycle": cycle})
        state[name] = 1
        for dep in sorted(dependencies.get(name, ())):
            if dep in dependencies:
                visit(dep, trail + (name,))
        state[name] = 2
        order.append(name)

    for name in sorted(dependencies):
        visit(name, ())
    return order


def _file_proto(
    doc: _Document,
    dependencies: list[str],
    messages: Mapping[str, MessageSchema],
    enums: Mapping[str, EnumSchema],
) -> descriptor_pb2.FileDescriptorProto:
    package = doc.body["package"]
    fdp = descriptor_pb2.FileDescriptorProto(name=doc.file_name, package=package, syntax="proto3")
    fdp.dependency.extend(dependencies)

    for enum in doc.body.get("enums", []):
        schema = enums[f"{package}.{enum['name']}"]
        enum_proto = fdp.enum_type.add(name=schema.name)
        # Enum values share their package's scope in protobuf, so they are
        # prefixed with the enum name to keep e.g. two UNKNOWNs apart.
        for ordinal, value in enumerate(schema.values):
            enum_proto.value.add(name=f"{schema.name.upper()}_{value.upper()}", number=ordinal)

    for message in doc.body.get("messages", []):
        schema = messages[f"{package}.{message['name']}"]
        msg_proto = fdp.message_type.add(name=schema.name)
        for spec in schema.fields:
            field_proto = msg_proto.field.add(
                name=spec.name,
                number=spec.number,
                label=_FDP.LABEL_REPEATED if spec.repeated else _FDP.LABEL_OPTIONAL,
            )
            if spec.kind is FieldKind.SCALAR:
                field_proto.type = _SCALAR_PB_TYPES[spec.type_name]
            elif spec.kind is FieldKind.ENUM:
                field_proto.type = _FDP.TYPE_ENUM
                field_proto.type_name = f".{spec.type_name}"
            else:
                field_proto.type = _FDP.TYPE_MESSAGE
                field_proto.type_name = f".{spec.type_name}"
    return fdp
