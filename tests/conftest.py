import json

import httpx
import pytest
from sqlalchemy import Column, ForeignKey, Integer, MetaData, Table, Text, create_engine
from sqlalchemy.pool import StaticPool

from storesync.db.credentials import CredentialStore


metadata = MetaData()

tenants = Table(
    "tenants",
    metadata,
    Column("id", Text, primary_key=True),
    Column("name", Text, nullable=False),
    Column("shop_domain", Text, nullable=False, unique=True),
    Column("shop_token", Text),
    Column("api_key", Text),
)

sync_runs = Table(
    "sync_runs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tenant_id", Text, ForeignKey("tenants.id"), nullable=False),
    Column("started_at", Text, nullable=False),
    Column("finished_at", Text),
    Column("status", Text, nullable=False),
    Column("error", Text),
    Column("total_forwarded", Integer, nullable=False, default=0),
    Column("batches", Integer, nullable=False, default=0),
    Column("failed_sequence", Integer),
)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def seeded_engine(engine):
    with engine.begin() as conn:
        conn.execute(tenants.insert(), [
            {"id": "hexco", "name": "HexCo", "shop_domain": "hexco.myshopify.com", "shop_token": "shpat_hex", "api_key": "key-123"},
            {"id": "lumi", "name": "Lumi Threads", "shop_domain": "lumi.myshopify.com", "shop_token": "shpat_lumi", "api_key": None},
        ])
    return engine


@pytest.fixture()
def store(seeded_engine):
    return CredentialStore(seeded_engine)


@pytest.fixture()
def hexco(store):
    return store.get_tenant("hexco")


def customer_node(index: int) -> dict:
    return {
        "id": f"gid://shopify/Customer/{index}",
        "firstName": f"First{index}",
        "lastName": f"Last{index}",
        "email": f"customer{index}@example.com",
        "phone": None,
        "defaultAddress": {"address1": f"{index} Main St", "city": "Portland", "country": "US", "zip": "97201"},
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": "2024-02-01T00:00:00Z",
        "tags": ["vip"] if index % 10 == 0 else [],
        "lifetimeDuration": "about 1 year",
    }


@pytest.fixture()
def shopify_source():
    """Build a respx side effect serving a static customer list page by page.

    ``cap`` limits page size the way Shopify silently caps ``first``.
    """

    def make(total: int, *, cap: int | None = None):
        nodes = [customer_node(i) for i in range(total)]
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            variables = json.loads(request.content)["variables"]
            requests.append(variables)
            start = int(variables["after"]) if variables["after"] else 0
            size = min(variables["first"], cap) if cap else variables["first"]
            page = nodes[start:start + size]
            end = start + len(page)
            return httpx.Response(
                200,
                json={
                    "data": {
                        "customers": {
                            "edges": [{"node": node} for node in page],
                            "pageInfo": {"hasNextPage": end < total, "endCursor": str(end)},
                        }
                    }
                },
            )

        handler.requests = requests
        return handler

    return make
