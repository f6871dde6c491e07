"""Customer sync jobs."""

from __future__ import annotations

import asyncio
import logging

from dotenv import load_dotenv
from sqlalchemy.engine import Engine

from storesync.db.credentials import CredentialStore
from storesync.db.session import create_engine_from_env
from storesync.sync.history import record_run
from storesync.sync.models import SyncRun
from storesync.sync.orchestrator import PAGE_SIZE, orchestrator_for

logger = logging.getLogger(__name__)


async def sync_tenant(tenant_id: str, *, engine: Engine | None = None, page_size: int = PAGE_SIZE) -> SyncRun:
    load_dotenv()
    engine = engine or create_engine_from_env()
    store = CredentialStore(engine)
    tenant = store.get_tenant(tenant_id)
    if tenant is None:
        raise KeyError(tenant_id)
    async with orchestrator_for(store, tenant) as orchestrator:
        run = await orchestrator.run(tenant, page_size)
    record_run(engine, run)
    return run


async def sync_all_tenants(*, engine: Engine | None = None, page_size: int = PAGE_SIZE) -> list[SyncRun]:
    """Sync every tenant in turn; one tenant's failure does not stop the others."""
    load_dotenv()
    engine = engine or create_engine_from_env()
    runs: list[SyncRun] = []
    for tenant in CredentialStore(engine).list_tenants():
        run = await sync_tenant(tenant.id, engine=engine, page_size=page_size)
        logger.info("Sync for %s finished as %s", tenant.shop_domain, run.status.value)
        runs.append(run)
    return runs


if __name__ == "__main__":
    asyncio.run(sync_all_tenants())
