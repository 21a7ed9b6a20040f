"""
Transaction kinds and their wire discriminators.

A kind's ``message_id`` is its ordinal in ``_KIND_NAMES``. The ledger
dispatches on that number, so the list is append-only: never reorder
it and never remove an entry, only add new kinds at the end.
"""

from __future__ import annotations

from dataclasses import dataclass

from factor_client.errors import UnknownTransactionKindError

SCHEMA_PACKAGE = "basis"

_KIND_NAMES: tuple[str, ...] = (
    "user.TxCreate",
    "user.TxUpdate",
    "user.TxSetPubkey",
    "user.TxSetRoles",
    "user.TxDelete",
    "company.TxCreatePrivate",
    "company.TxUpdate",
    "company.TxSetType",
    "company.TxDelete",
    "company_member.TxCreate",
    "company_member.TxSetRoles",
    "company_member.TxDelete",
    "product.TxCreate",
    "product.TxUpdate",
    "product.TxDelete",
    "order.TxCreate",
    "order.TxUpdateStatus",
    # Appended after the first release.
    "labor.TxCreate",
    "labor.TxSetTime",
    "product.TxSetOption",
    "product.TxSetVariant",
    "product.TxUpdateVariant",
    "order.TxUpdateCostCategory",
    "resource_tag.TxCreate",
    "resource_tag.TxDelete",
    "cost_tag.TxCreate",
    "cost_tag.TxUpdate",
    "cost_tag.TxDelete",
    "company_member.TxUpdate",
)


@dataclass(frozen=True)
class TransactionKind:
    """One transaction type.

    Attributes:
        name: ``<entity>.<Verb>``, e.g. ``user.TxCreate``.
        message_id: Wire discriminator (ordinal in the kind list).
        schema_name: Full name of the payload message.
    """

    name: str
    message_id: int
    schema_name: str

    @property
    def entity(self) -> str:
        return self.name.partition(".")[0]


TRANSACTION_KINDS: tuple[TransactionKind, ...] = tuple(
    TransactionKind(name=name, message_id=i, schema_name=f"{SCHEMA_PACKAGE}.{name}")
    for i, name in enumerate(_KIND_NAMES)
)

_BY_NAME = {kind.name: kind for kind in TRANSACTION_KINDS}


def get_kind(kind: TransactionKind | str) -> TransactionKind:
    """Look up a kind by name (a ``TransactionKind`` is returned as-is).

    Raises:
        UnknownTransactionKindError: If the name is not in the kind list.
    """
    if isinstance(kind, TransactionKind):
        return kind
    try:
        return _BY_NAME[kind]
    except KeyError:
        raise UnknownTransactionKindError(kind) from None


def kind_for_message_id(message_id: int) -> TransactionKind:
    if 0 <= message_id < len(TRANSACTION_KINDS):
        return TRANSACTION_KINDS[message_id]
    raise UnknownTransactionKindError(str(message_id))
