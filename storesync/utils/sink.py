"""Outbound delivery to the external backend."""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from storesync.errors import DispatchNetworkError, DispatchRejected

logger = logging.getLogger(__name__)

CUSTOMER_SYNC_URL = os.environ.get("CUSTOMER_SYNC_URL", "http://localhost:3000/api/customer-sync")
ABANDONED_CART_URL = os.environ.get("ABANDONED_CART_URL", "https://your-api-endpoint.com/abandoned-cart")


class ExternalSink:
    """JSON POST endpoint authenticated with a per-tenant bearer token.

    Every call is a single attempt: a non-2xx answer raises
    ``DispatchRejected`` and a request that produced no usable response
    raises ``DispatchNetworkError``.
    """

    def __init__(self, url: str, *, session: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self._owns_session = session is None
        self._session = session or httpx.AsyncClient(timeout=30.0)

    async def close(self) -> None:
        if self._owns_session:
            await self._session.aclose()

    async def post(self, payload: dict[str, Any], *, credential: str) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {credential}",
        }
        try:
            response = await self._session.post(self.url, json=payload, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Delivery to %s failed: %s", self.url, exc)
            raise DispatchNetworkError(str(exc)) from exc
        if not response.is_success:
            raise DispatchRejected(response.status_code)
        return response
