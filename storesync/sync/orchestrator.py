"""Customer sync runs."""

from __future__ import annotations

import logging
import os
from contextlib import aclosing, asynccontextmanager
from typing import AsyncIterator

import httpx

from storesync.db.credentials import CredentialStore
from storesync.errors import FetchFailed, NoCredential, SyncErrorKind
from storesync.ingest.models import Tenant
from storesync.ingest.shopify import CursorWalker, ShopifyCustomerClient
from storesync.sync.dispatcher import BatchDispatcher
from storesync.sync.models import BatchOutcome, BatchStatus, SyncRun, SyncStatus
from storesync.utils.dates import utc_now
from storesync.utils.sink import CUSTOMER_SYNC_URL, ExternalSink

logger = logging.getLogger(__name__)

PAGE_SIZE = int(os.environ.get("PAGE_SIZE", 50))

NO_CREDENTIAL_MESSAGE = "API key is not configured. Please set up your API key in the app settings."


class SyncOrchestrator:
    def __init__(self, store: CredentialStore, walker: CursorWalker, dispatcher: BatchDispatcher) -> None:
        self.store = store
        self.walker = walker
        self.dispatcher = dispatcher

    async def run(self, tenant: Tenant, page_size: int = PAGE_SIZE) -> SyncRun:
        """Walk every customer page and forward it, stopping at the first failure.

        Never raises: the outcome is carried by the returned, finished run.
        """
        run = SyncRun(tenant_id=tenant.id, started_at=utc_now())
        credential = self.store.get(tenant.id)
        if not credential:
            logger.info("No API key configured for %s; sync not started", tenant.shop_domain)
            return run.finish(
                SyncStatus.FAILED, utc_now(), error=SyncErrorKind.NO_CREDENTIAL, message=NO_CREDENTIAL_MESSAGE
            )

        logger.info("Starting customer sync for %s (page size %s)", tenant.shop_domain, page_size)
        sequence = 0
        try:
            async with aclosing(self.walker.iter_batches(page_size)) as batches:
                async for batch in batches:
                    sequence += 1
                    try:
                        outcome = await self.dispatcher.send(batch, tenant, sequence, credential=credential)
                    except NoCredential as exc:
                        return run.finish(
                            SyncStatus.FAILED, utc_now(), error=exc.kind, failed_sequence=sequence, message=str(exc)
                        )
                    run.record(outcome)
                    if not outcome.ok:
                        return self._stop_on_failed_batch(run, outcome)
        except FetchFailed as exc:
            logger.warning("Fetching batch %s for %s failed: %s", sequence + 1, tenant.shop_domain, exc)
            return run.finish(
                SyncStatus.FAILED,
                utc_now(),
                error=SyncErrorKind.FETCH_FAILED,
                failed_sequence=sequence + 1,
                message=str(exc),
            )

        logger.info("Synchronized %s customers for %s in %s batches", run.total_forwarded, tenant.shop_domain, sequence)
        return run.finish(
            SyncStatus.SUCCESS,
            utc_now(),
            message=f"Successfully synchronized {run.total_forwarded} customers to external API.",
        )

    def _stop_on_failed_batch(self, run: SyncRun, outcome: BatchOutcome) -> SyncRun:
        status = SyncStatus.PARTIAL if run.total_forwarded > 0 else SyncStatus.FAILED
        if outcome.status is BatchStatus.REJECTED:
            error = SyncErrorKind.DISPATCH_REJECTED
            message = f"API call failed with status: {outcome.http_status}"
        else:
            error = SyncErrorKind.DISPATCH_NETWORK_ERROR
            message = "Could not reach the external API"
        return run.finish(status, utc_now(), error=error, failed_sequence=outcome.sequence, message=message)


@asynccontextmanager
async def orchestrator_for(
    store: CredentialStore,
    tenant: Tenant,
    *,
    session: httpx.AsyncClient | None = None,
) -> AsyncIterator[SyncOrchestrator]:
    """Wire the Shopify walker and the sink for one tenant and close them afterwards.

    A caller-supplied ``session`` is shared by both and left open.
    """
    client = ShopifyCustomerClient(tenant.shop_domain, store.shop_token(tenant.id) or "", session=session)
    sink = ExternalSink(CUSTOMER_SYNC_URL, session=session)
    try:
        yield SyncOrchestrator(store, CursorWalker(client), BatchDispatcher(sink))
    finally:
        await client.close()
        await sink.close()
