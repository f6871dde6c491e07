"""Ingestion data models."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Mapping


@dataclass(slots=True, frozen=True)
class Tenant:
    id: str
    name: str
    shop_domain: str


@dataclass(slots=True, frozen=True)
class Address:
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    province: str | None = None
    country: str | None = None
    zip: str | None = None
    phone: str | None = None

    @classmethod
    def from_node(cls, node: Mapping[str, Any] | None) -> Address | None:
        if not node:
            return None
        return cls(**{f.name: node.get(f.name) for f in fields(cls)})

    def to_payload(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(slots=True, frozen=True)
class CustomerRecord:
    """Snapshot of one upstream customer, relayed as fetched."""

    id: str
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    default_address: Address | None = None
    created_at: str | None = None
    updated_at: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    lifetime_duration: str | None = None

    @classmethod
    def from_node(cls, node: Mapping[str, Any]) -> CustomerRecord:
        customer_id = node.get("id")
        if not customer_id:
            raise ValueError("Customer node is missing an id")
        return cls(
            id=str(customer_id),
            first_name=node.get("firstName"),
            last_name=node.get("lastName"),
            email=node.get("email"),
            phone=node.get("phone"),
            default_address=Address.from_node(node.get("defaultAddress")),
            created_at=node.get("createdAt"),
            updated_at=node.get("updatedAt"),
            tags=tuple(node.get("tags") or ()),
            lifetime_duration=node.get("lifetimeDuration"),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "defaultAddress": self.default_address.to_payload() if self.default_address else None,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "tags": list(self.tags),
            "lifetimeDuration": self.lifetime_duration,
        }


@dataclass(slots=True, frozen=True)
class PageCursor:
    value: str | None
    has_more: bool
