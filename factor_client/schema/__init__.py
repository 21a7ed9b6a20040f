"""Schema descriptors and the registry that loads them."""

from factor_client.schema.descriptor import (
    EnumSchema,
    FieldKind,
    FieldSpec,
    MessageSchema,
)
from factor_client.schema.registry import DESCRIPTOR_SCHEMA, SchemaRegistry

__all__ = [
    "DESCRIPTOR_SCHEMA",
    "EnumSchema",
    "FieldKind",
    "FieldSpec",
    "MessageSchema",
    "SchemaRegistry",
]
