"""Per-tenant run locks."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator


class TenantBusy(Exception):
    def __init__(self, tenant_id: str) -> None:
        super().__init__(f"A sync is already running for tenant {tenant_id}")
        self.tenant_id = tenant_id


class TenantRunLock:
    """At most one holder per tenant within this process; never waits."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def is_held(self, tenant_id: str) -> bool:
        return tenant_id in self._locks and self._locks[tenant_id].locked()

    @asynccontextmanager
    async def hold(self, tenant_id: str) -> AsyncIterator[None]:
        lock = self._locks[tenant_id]
        if lock.locked():
            raise TenantBusy(tenant_id)
        async with lock:
            yield
