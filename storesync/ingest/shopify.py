"""Shopify customer ingestion."""

from __future__ import annotations

import logging
import os
from typing import Any, AsyncIterator

import httpx

from storesync.errors import FetchFailed
from storesync.ingest.models import CustomerRecord, PageCursor

logger = logging.getLogger(__name__)

API_VERSION = os.environ.get("SHOPIFY_API_VERSION", "2024-01")

CUSTOMERS_QUERY = """
query GetCustomers($first: Int!, $after: String) {
  customers(first: $first, after: $after) {
    edges {
      node {
        id
        firstName
        lastName
        email
        phone
        defaultAddress {
          address1
          address2
          city
          province
          country
          zip
          phone
        }
        createdAt
        updatedAt
        tags
        lifetimeDuration
      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""


class ShopifyCustomerClient:
    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        *,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        self.shop_domain = shop_domain
        self._access_token = access_token
        self._owns_session = session is None
        self._session = session or httpx.AsyncClient(timeout=30.0, headers={"User-Agent": "StoreSync/1.0"})

    @property
    def endpoint(self) -> str:
        host = self.shop_domain.replace("https://", "").replace("http://", "").rstrip("/")
        return f"https://{host}/admin/api/{API_VERSION}/graphql.json"

    async def close(self) -> None:
        if self._owns_session:
            await self._session.aclose()

    async def fetch_customers(self, first: int, after: str | None = None) -> dict[str, Any]:
        """Return the raw ``customers`` connection for one page."""
        body = {"query": CUSTOMERS_QUERY, "variables": {"first": first, "after": after}}
        headers = {"X-Shopify-Access-Token": self._access_token}
        try:
            response = await self._session.post(self.endpoint, json=body, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise FetchFailed(f"Customer page fetch failed for {self.shop_domain}: {exc}") from exc
        except ValueError as exc:
            raise FetchFailed(f"Invalid JSON from {self.shop_domain}") from exc
        if not isinstance(data, dict):
            raise FetchFailed(f"Unexpected response body from {self.shop_domain}")
        if data.get("errors"):
            raise FetchFailed(f"GraphQL errors for {self.shop_domain}: {data['errors']}")
        connection = (data.get("data") or {}).get("customers")
        if not isinstance(connection, dict):
            raise FetchFailed(f"Response from {self.shop_domain} has no customers connection")
        return connection


class CursorWalker:
    """Walks the customer connection one bounded page at a time."""

    def __init__(self, client: ShopifyCustomerClient) -> None:
        self.client = client

    async def next_batch(
        self, cursor: PageCursor | None, page_size: int
    ) -> tuple[list[CustomerRecord], PageCursor]:
        if not isinstance(page_size, int) or isinstance(page_size, bool) or page_size < 1:
            raise ValueError(f"page_size must be a positive integer, got {page_size!r}")
        after = cursor.value if cursor else None
        connection = await self.client.fetch_customers(page_size, after)
        try:
            records = [CustomerRecord.from_node(edge["node"]) for edge in connection.get("edges") or []]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise FetchFailed(f"Malformed customer edge from {self.client.shop_domain}: {exc}") from exc
        page_info = connection.get("pageInfo") or {}
        new_cursor = PageCursor(
            value=page_info.get("endCursor"),
            has_more=bool(page_info.get("hasNextPage")),
        )
        if records and new_cursor.has_more and (new_cursor.value is None or new_cursor.value == after):
            raise FetchFailed(
                f"Customer pagination for {self.client.shop_domain} did not advance past cursor {after!r}"
            )
        logger.debug("Fetched %s customers (has_more=%s)", len(records), new_cursor.has_more)
        return records, new_cursor

    async def iter_batches(self, page_size: int) -> AsyncIterator[list[CustomerRecord]]:
        cursor: PageCursor | None = None
        while True:
            records, cursor = await self.next_batch(cursor, page_size)
            if not records:
                return
            yield records
            if not cursor.has_more:
                return
