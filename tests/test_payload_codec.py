"""
Tests for PayloadCodec — schema-driven encode/validate/serialize.

Test plan:
- to_wire applies codecs per field kind, recursing into nested and
  repeated message fields; None values are dropped
- validate: unknown field, missing required field, cardinality, scalar
  types and integer ranges, each with a dotted field path
- serialize is deterministic and deserialize inverts it
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from factor_client.codecs import WireTimestamp
from factor_client.errors import UnknownFieldError, ValidationError
from factor_client.schema.payload import PayloadCodec
from factor_client.schema.registry import SchemaRegistry

CREATED = datetime(2019, 3, 1, 9, 30, tzinfo=timezone.utc)
PUBKEY = "11" * 32


@pytest.fixture
def codec(registry: SchemaRegistry) -> PayloadCodec:
    return PayloadCodec(registry)


def _order(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": "O1",
        "company_id_from": "C1",
        "company_id_to": "C2",
        "products": [
            {"product_id": "P1", "quantity": 3},
            {"product_id": "P2", "product_variant_id": "V", "quantity": 1},
        ],
        "created": CREATED,
    }
    payload.update(overrides)
    return payload


class TestToWire:
    def test_codec_fields_encoded(self, codec: PayloadCodec) -> None:
        wire = codec.to_wire("basis.user.TxCreate", {
            "id": "U1", "email": "a@b.com", "pubkey": PUBKEY, "created": CREATED,
        })
        assert wire["id"] == "U1"
        assert wire["pubkey"] == bytes.fromhex(PUBKEY)
        assert wire["created"] == WireTimestamp(int(CREATED.timestamp()), 0)

    def test_enum_and_nested(self, codec: PayloadCodec) -> None:
        wire = codec.to_wire("basis.product.TxCreate", {
            "unit": "milliliter",
            "effort": {"time": "Hours", "quantity": 2},
        })
        assert wire["unit"] == 2
        assert wire["effort"] == {"time": 5, "quantity": 2}

    def test_none_dropped(self, codec: PayloadCodec) -> None:
        wire = codec.to_wire("basis.user.TxCreate", {"id": "U1", "email": "a@b.com", "name": None})
        assert "name" not in wire

    def test_codec_error_carries_path(self, codec: PayloadCodec) -> None:
        with pytest.raises(ValidationError) as exc_info:
            codec.to_wire("basis.user.TxCreate", {"id": "U1", "pubkey": "abc"})
        assert exc_info.value.field == "pubkey"


class TestValidate:
    def test_valid_payload_passes(self, codec: PayloadCodec) -> None:
        codec.validate("basis.order.TxCreate", codec.to_wire("basis.order.TxCreate", _order()))

    def test_unknown_field(self, codec: PayloadCodec) -> None:
        wire = codec.to_wire("basis.user.TxCreate", {"id": "U1", "email": "a@b.com", "age": 3})
        with pytest.raises(UnknownFieldError) as exc_info:
            codec.validate("basis.user.TxCreate", wire)
        assert exc_info.value.field == "age"
        assert exc_info.value.error_code == "UNKNOWN_FIELD"

    def test_unknown_nested_field_path(self, codec: PayloadCodec) -> None:
        order = _order(products=[{"product_id": "P1", "quantity": 1, "colour": "red"}])
        with pytest.raises(UnknownFieldError) as exc_info:
            codec.validate("basis.order.TxCreate", codec.to_wire("basis.order.TxCreate", order))
        assert exc_info.value.field == "products[0].colour"

    def test_missing_required(self, codec: PayloadCodec) -> None:
        with pytest.raises(ValidationError) as exc_info:
            codec.validate("basis.user.TxCreate", {"id": "U1"})
        assert exc_info.value.field == "email"
        assert "required" in exc_info.value.reason

    def test_missing_required_nested(self, codec: PayloadCodec) -> None:
        order = _order(products=[{"product_id": "P1"}])
        with pytest.raises(ValidationError) as exc_info:
            codec.validate("basis.order.TxCreate", codec.to_wire("basis.order.TxCreate", order))
        assert exc_info.value.field == "products[0].quantity"

    def test_repeated_requires_list(self, codec: PayloadCodec) -> None:
        with pytest.raises(ValidationError, match="list"):
            codec.validate("basis.user.TxCreate", {"id": "U1", "email": "a@b.com", "roles": "User"})

    def test_single_rejects_list(self, codec: PayloadCodec) -> None:
        with pytest.raises(ValidationError, match="single value"):
            codec.validate("basis.user.TxCreate", {"id": ["U1"], "email": "a@b.com"})

    @pytest.mark.parametrize("value", ["3", 1.5, True, -1, 2**64])
    def test_uint64_type_and_range(self, codec: PayloadCodec, value: object) -> None:
        order = _order(products=[{"product_id": "P1", "quantity": value}])
        with pytest.raises(ValidationError) as exc_info:
            codec.validate("basis.order.TxCreate", codec.to_wire("basis.order.TxCreate", order))
        assert exc_info.value.field == "products[0].quantity"

    def test_string_type(self, codec: PayloadCodec) -> None:
        with pytest.raises(ValidationError, match="expected string"):
            codec.validate("basis.user.TxCreate", {"id": 7, "email": "a@b.com"})

    def test_double_accepts_int(self, codec: PayloadCodec) -> None:
        payload = {
            "id": "P1", "company_id": "C1", "name": "Widget", "unit": "millimeter",
            "mass_mg": 12, "created": CREATED,
        }
        codec.validate("basis.product.TxCreate", codec.to_wire("basis.product.TxCreate", payload))


class TestSerialize:
    def test_deterministic(self, codec: PayloadCodec) -> None:
        first = codec.serialize("basis.order.TxCreate", _order())
        second = codec.serialize("basis.order.TxCreate", dict(reversed(list(_order().items()))))
        assert first == second

    def test_deserialize_inverts(self, codec: PayloadCodec) -> None:
        data = codec.serialize("basis.user.TxCreate", {
            "id": "U1", "email": "a@b.com", "roles": ["User", "Bank"], "pubkey": PUBKEY, "created": CREATED,
        })
        native = codec.deserialize("basis.user.TxCreate", data)
        assert native["id"] == "U1"
        assert native["roles"] == ["User", "Bank"]
        assert native["pubkey"] == PUBKEY
        assert native["created"] == CREATED
        assert native["name"] == ""

    def test_nested_repeated_roundtrip(self, codec: PayloadCodec) -> None:
        native = codec.deserialize("basis.order.TxCreate", codec.serialize("basis.order.TxCreate", _order()))
        assert native["products"][1] == {"product_id": "P2", "product_variant_id": "V", "quantity": 1}

    def test_enum_roundtrip_canonical(self, codec: PayloadCodec) -> None:
        payload = {"id": "O1", "process_status": "accepted", "updated": CREATED}
        native = codec.deserialize("basis.order.TxUpdateStatus", codec.serialize("basis.order.TxUpdateStatus", payload))
        assert native["process_status"] == "ACCEPTED"

    def test_garbage_bytes_rejected(self, codec: PayloadCodec) -> None:
        with pytest.raises(ValidationError):
            codec.deserialize("basis.user.TxCreate", b"\xff\xff\xff")
