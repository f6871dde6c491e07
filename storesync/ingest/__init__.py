"""Ingestion helpers."""

from __future__ import annotations

import pathlib

import yaml

from storesync.ingest.models import Tenant

TENANTS_PATH = pathlib.Path(__file__).with_name("tenants.yml")


def load_tenants(path: pathlib.Path = TENANTS_PATH, limit: int | None = None) -> list[Tenant]:
    data = yaml.safe_load(path.read_text()) or []
    tenants = [Tenant(id=str(item["id"]), name=item["name"], shop_domain=item["shop_domain"]) for item in data]
    if limit:
        return tenants[:limit]
    return tenants
