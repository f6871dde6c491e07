"""Celery configuration for background and scheduled syncs."""

from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from storesync.utils.dates import timezone_name

broker_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
backend_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")

celery_app = Celery("storesync", broker=broker_url, backend=backend_url, include=["storesync.jobs.sync"])
celery_app.conf.timezone = timezone_name()
celery_app.conf.beat_schedule = {
    "nightly-customer-sync": {
        "task": "storesync.jobs.sync.sync_all_tenants",
        "schedule": crontab(hour=int(os.environ.get("SYNC_HOUR", "2")), minute=int(os.environ.get("SYNC_MINUTE", "0"))),
    },
}


@celery_app.task(name="storesync.jobs.sync.sync_tenant")
def sync_tenant_task(tenant_id: str) -> dict[str, object]:  # pragma: no cover - executed by worker
    import asyncio

    from storesync.jobs.sync import sync_tenant

    run = asyncio.run(sync_tenant(tenant_id))
    return run.summary()


@celery_app.task(name="storesync.jobs.sync.sync_all_tenants")
def sync_all_tenants_task() -> list[dict[str, object]]:  # pragma: no cover - executed by worker
    import asyncio

    from storesync.jobs.sync import sync_all_tenants

    runs = asyncio.run(sync_all_tenants())
    return [run.summary() for run in runs]
