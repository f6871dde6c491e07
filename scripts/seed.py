"""Seed the database with demo tenants."""

from __future__ import annotations

import os

from dotenv import load_dotenv

from storesync.db.credentials import CredentialStore
from storesync.db.session import create_engine_from_env
from storesync.ingest import load_tenants


def main() -> None:
    load_dotenv()
    store = CredentialStore(create_engine_from_env())
    shop_token = os.environ.get("SHOPIFY_ACCESS_TOKEN")
    demo_key = os.environ.get("DEMO_API_KEY")
    for tenant in load_tenants():
        store.upsert_tenant(tenant, shop_token=shop_token)
        if demo_key:
            store.set(tenant.id, demo_key)
    print("Seed complete")


if __name__ == "__main__":
    main()
