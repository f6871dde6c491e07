"""Forward customer batches to the external backend."""

from __future__ import annotations

import logging
from typing import Sequence

from storesync.errors import DispatchNetworkError, DispatchRejected, NoCredential
from storesync.ingest.models import CustomerRecord, Tenant
from storesync.sync.models import BatchOutcome, BatchStatus
from storesync.utils.dates import utc_now
from storesync.utils.sink import ExternalSink

logger = logging.getLogger(__name__)


class BatchDispatcher:
    def __init__(self, sink: ExternalSink) -> None:
        self.sink = sink

    async def send(
        self,
        batch: Sequence[CustomerRecord],
        tenant: Tenant,
        sequence: int,
        *,
        credential: str | None,
    ) -> BatchOutcome:
        """Deliver one batch in a single attempt and classify the result.

        Raises ``NoCredential`` before touching the network when the tenant
        has no API key.
        """
        if not credential:
            raise NoCredential(tenant.id)
        payload = {
            "shop": tenant.shop_domain,
            "customers": [record.to_payload() for record in batch],
            "syncDate": utc_now().isoformat(),
            "batch": sequence,
        }
        try:
            response = await self.sink.post(payload, credential=credential)
        except DispatchRejected as exc:
            logger.warning("Batch %s for %s rejected with status %s", sequence, tenant.shop_domain, exc.status_code)
            return BatchOutcome(sequence, BatchStatus.REJECTED, len(batch), http_status=exc.status_code)
        except DispatchNetworkError:
            logger.warning("Batch %s for %s could not be delivered", sequence, tenant.shop_domain)
            return BatchOutcome(sequence, BatchStatus.NETWORK_ERROR, len(batch))
        logger.info("Batch %s for %s delivered (%s customers)", sequence, tenant.shop_domain, len(batch))
        return BatchOutcome(sequence, BatchStatus.OK, len(batch), http_status=response.status_code)
