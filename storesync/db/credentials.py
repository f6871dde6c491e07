"""Tenant and API key storage."""

from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy.engine import Engine
from sqlalchemy.sql import text

from storesync.ingest.models import Tenant


class CredentialStore:
    """One external API key per tenant, stored on the ``tenants`` row."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get(self, tenant_id: str) -> str | None:
        with self.engine.connect() as conn:
            api_key = conn.execute(
                text("SELECT api_key FROM tenants WHERE id = :id"), {"id": tenant_id}
            ).scalar_one_or_none()
        return api_key or None

    def set(self, tenant_id: str, credential: str) -> None:
        if not credential:
            raise ValueError("Credential must be a non-empty string")
        self._update_key(tenant_id, credential)

    def clear(self, tenant_id: str) -> None:
        self._update_key(tenant_id, None)

    def _update_key(self, tenant_id: str, value: str | None) -> None:
        with self.engine.begin() as conn:
            result = conn.execute(
                text("UPDATE tenants SET api_key = :api_key WHERE id = :id"),
                {"api_key": value, "id": tenant_id},
            )
            if result.rowcount == 0:
                raise KeyError(tenant_id)

    def shop_token(self, tenant_id: str) -> str | None:
        with self.engine.connect() as conn:
            return conn.execute(
                text("SELECT shop_token FROM tenants WHERE id = :id"), {"id": tenant_id}
            ).scalar_one_or_none()

    def get_tenant(self, tenant_id: str) -> Tenant | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                text("SELECT id, name, shop_domain FROM tenants WHERE id = :id"), {"id": tenant_id}
            ).mappings().first()
        return _to_tenant(row) if row else None

    def get_tenant_by_domain(self, shop_domain: str) -> Tenant | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                text("SELECT id, name, shop_domain FROM tenants WHERE shop_domain = :domain"),
                {"domain": shop_domain},
            ).mappings().first()
        return _to_tenant(row) if row else None

    def list_tenants(self) -> list[Tenant]:
        with self.engine.connect() as conn:
            rows = conn.execute(text("SELECT id, name, shop_domain FROM tenants ORDER BY id")).mappings().all()
        return [_to_tenant(row) for row in rows]

    def upsert_tenant(self, tenant: Tenant, *, shop_token: str | None = None) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO tenants (id, name, shop_domain, shop_token)
                    VALUES (:id, :name, :shop_domain, :shop_token)
                    ON CONFLICT (id) DO UPDATE SET
                      name = EXCLUDED.name,
                      shop_domain = EXCLUDED.shop_domain,
                      shop_token = COALESCE(EXCLUDED.shop_token, tenants.shop_token)
                    """
                ),
                {
                    "id": tenant.id,
                    "name": tenant.name,
                    "shop_domain": tenant.shop_domain,
                    "shop_token": shop_token,
                },
            )


def _to_tenant(row: Mapping[str, Any]) -> Tenant:
    return Tenant(id=str(row["id"]), name=row["name"], shop_domain=row["shop_domain"])
