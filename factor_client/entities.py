"""
Read endpoints of the factor service.

Each endpoint serves one entity table::

    GET {endpoint}/services/factor/v1{path}/info?{key_field}=<value>
    GET {endpoint}/services/factor/v1{path}?after=&per_page=

``table_index`` is the table's position inside the service's state, used
to derive the table's key in the state map. The service exposes every
object table at index 0.
"""

from __future__ import annotations

from dataclasses import dataclass

from factor_client.crypto import hash_key


@dataclass(frozen=True)
class EntityEndpoint:
    name: str
    path: str
    schema_name: str
    key_field: str = "id"
    table_index: int = 0

    @property
    def info_path(self) -> str:
        return f"{self.path}/info"

    def object_key(self, value: str) -> bytes:
        """Key under which the service stores the object (SHA-256 of the key)."""
        return hash_key(value)


ENTITY_ENDPOINTS: tuple[EntityEndpoint, ...] = (
    EntityEndpoint("users", "/users", "basis.user.User"),
    EntityEndpoint("companies", "/companies", "basis.company.Company"),
    EntityEndpoint(
        "company_members", "/companies/members", "basis.company_member.CompanyMember", key_field="user_id"
    ),
    EntityEndpoint("products", "/products", "basis.product.Product"),
    EntityEndpoint("orders", "/orders", "basis.order.Order"),
    EntityEndpoint("labor", "/labor", "basis.labor.Labor"),
    EntityEndpoint("cost_tags", "/cost-tags", "basis.cost_tag.CostTag"),
    EntityEndpoint("resource_tags", "/resource-tags", "basis.resource_tag.ResourceTag"),
)

_BY_NAME = {endpoint.name: endpoint for endpoint in ENTITY_ENDPOINTS}


def get_endpoint(name: str | EntityEndpoint) -> EntityEndpoint:
    """Look up an endpoint by name.

    Raises:
        ValueError: If no endpoint has that name.
    """
    if isinstance(name, EntityEndpoint):
        return name
    try:
        return _BY_NAME[name]
    except KeyError:
        raise ValueError(f"unknown entity endpoint: {name!r} (known: {', '.join(_BY_NAME)})") from None
