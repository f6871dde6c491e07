"""FastAPI application for customer sync and checkout webhooks."""

from __future__ import annotations

import logging
import os
from datetime import datetime
from functools import lru_cache
from typing import Any, AsyncIterator

import httpx
from fastapi import Body, Depends, FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.engine import Engine

from storesync.db.credentials import CredentialStore
from storesync.db.session import create_engine_from_env
from storesync.logic.abandonment import AbandonmentDetector, CheckoutEvent
from storesync.sync.history import latest_run, record_run
from storesync.sync.models import SyncStatus
from storesync.sync.orchestrator import PAGE_SIZE, orchestrator_for
from storesync.utils.locks import TenantBusy, TenantRunLock
from storesync.utils.sink import ABANDONED_CART_URL, ExternalSink

logger = logging.getLogger(__name__)

app = FastAPI(title="StoreSync API")

run_lock = TenantRunLock()


class CredentialRequest(BaseModel):
    api_key: str = Field(min_length=1)


class ConnectionResponse(BaseModel):
    tenant_id: str
    shop: str
    is_connected: bool
    last_sync: dict[str, Any] | None = None


class SyncResponse(BaseModel):
    success: bool
    status: str
    message: str | None
    total_forwarded: int
    batches: int
    error: str | None = None
    failed_sequence: int | None = None


class CheckoutCustomer(BaseModel):
    id: int | str | None = None


class CheckoutPayload(BaseModel):
    cart_token: str = Field(min_length=1)
    email: str | None = None
    customer: CheckoutCustomer | None = None
    abandoned_checkout_url: str | None = None
    total_price: str | float | None = None
    line_items: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime
    completed_at: datetime | None = None


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_engine_from_env()


def get_store(engine: Engine = Depends(get_engine)) -> CredentialStore:
    return CredentialStore(engine)


async def get_http_session() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=30.0) as session:
        yield session


def get_run_lock() -> TenantRunLock:
    return run_lock


def _require_tenant(store: CredentialStore, tenant_id: str):
    tenant = store.get_tenant(tenant_id)
    if tenant is None:
        raise HTTPException(status_code=404, detail="Unknown tenant")
    return tenant


@app.get("/tenants/{tenant_id}/connection", response_model=ConnectionResponse)
async def connection(
    tenant_id: str,
    store: CredentialStore = Depends(get_store),
    engine: Engine = Depends(get_engine),
) -> ConnectionResponse:
    tenant = _require_tenant(store, tenant_id)
    return ConnectionResponse(
        tenant_id=tenant.id,
        shop=tenant.shop_domain,
        is_connected=store.get(tenant.id) is not None,
        last_sync=latest_run(engine, tenant.id),
    )


@app.put("/tenants/{tenant_id}/credential")
async def set_credential(
    tenant_id: str, payload: CredentialRequest, store: CredentialStore = Depends(get_store)
) -> JSONResponse:
    tenant = _require_tenant(store, tenant_id)
    store.set(tenant.id, payload.api_key)
    return JSONResponse({"status": "ok"})


@app.delete("/tenants/{tenant_id}/credential")
async def clear_credential(tenant_id: str, store: CredentialStore = Depends(get_store)) -> JSONResponse:
    tenant = _require_tenant(store, tenant_id)
    store.clear(tenant.id)
    return JSONResponse({"status": "ok"})


@app.post("/tenants/{tenant_id}/customer-sync", response_model=SyncResponse)
async def customer_sync(
    tenant_id: str,
    page_size: int = PAGE_SIZE,
    store: CredentialStore = Depends(get_store),
    engine: Engine = Depends(get_engine),
    session: httpx.AsyncClient = Depends(get_http_session),
    lock: TenantRunLock = Depends(get_run_lock),
) -> SyncResponse:
    if page_size < 1:
        raise HTTPException(status_code=400, detail="page_size must be positive")
    tenant = _require_tenant(store, tenant_id)
    try:
        async with lock.hold(tenant.id):
            async with orchestrator_for(store, tenant, session=session) as orchestrator:
                run = await orchestrator.run(tenant, page_size)
    except TenantBusy as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    record_run(engine, run)
    return SyncResponse(
        success=run.status is SyncStatus.SUCCESS,
        status=run.status.value,
        message=run.message,
        total_forwarded=run.total_forwarded,
        batches=len(run.batches),
        error=run.error.value if run.error else None,
        failed_sequence=run.failed_sequence,
    )


@app.post("/webhooks/checkouts/update")
async def checkout_webhook(
    body: dict[str, Any] = Body(...),
    shop: str | None = Header(default=None, alias="X-Shopify-Shop-Domain"),
    store: CredentialStore = Depends(get_store),
    session: httpx.AsyncClient = Depends(get_http_session),
) -> JSONResponse:
    logger.info("Received checkouts/update webhook for %s", shop)
    tenant = store.get_tenant_by_domain(shop) if shop else None
    if tenant is None:
        logger.warning("Checkout webhook for unknown shop %s", shop)
        return JSONResponse({"status": "unknown_shop"})
    try:
        payload = CheckoutPayload.model_validate(body)
        event = CheckoutEvent.from_payload(payload.model_dump())
    except (ValidationError, ValueError) as exc:
        logger.warning("Invalid checkout payload from %s: %s", shop, exc)
        return JSONResponse({"status": "invalid_payload"})

    detector = AbandonmentDetector(store, ExternalSink(ABANDONED_CART_URL, session=session))
    result = await detector.handle(event, tenant)
    return JSONResponse(
        {
            "status": result.status.value,
            "abandoned": result.decision.abandoned,
            "minutes_idle": result.decision.elapsed_minutes,
            "error": result.error.value if result.error else None,
        }
    )


def serve() -> None:
    import uvicorn

    uvicorn.run(
        "storesync.api.main:app",
        host=os.environ.get("API_HOST", "0.0.0.0"),
        port=int(os.environ.get("API_PORT", "8000")),
    )


if __name__ == "__main__":
    serve()
