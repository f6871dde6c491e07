"""Abandoned checkout detection."""

from __future__ import annotations

import enum
import logging
import math
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from storesync.db.credentials import CredentialStore
from storesync.errors import NoCredential, NotificationFailed, SyncError, SyncErrorKind
from storesync.ingest.models import Tenant
from storesync.utils.dates import isoformat, parse_timestamp, utc_now
from storesync.utils.sink import ExternalSink

logger = logging.getLogger(__name__)

ABANDONMENT_THRESHOLD_MINUTES = int(os.environ.get("ABANDONMENT_THRESHOLD_MINUTES", 60))


@dataclass(slots=True, frozen=True)
class CheckoutEvent:
    cart_token: str
    updated_at: datetime
    customer_id: str | None = None
    email: str | None = None
    abandoned_checkout_url: str | None = None
    total_price: str | None = None
    line_items: list[dict[str, Any]] = field(default_factory=list)
    created_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> CheckoutEvent:
        """Build an event from a Shopify checkout webhook body."""
        cart_token = payload.get("cart_token")
        if not cart_token:
            raise ValueError("Checkout payload is missing cart_token")
        updated_at = parse_timestamp(payload.get("updated_at"))
        if updated_at is None:
            raise ValueError("Checkout payload is missing updated_at")
        customer = payload.get("customer") or {}
        customer_id = payload.get("customer_id") or customer.get("id")
        total_price = payload.get("total_price")
        return cls(
            cart_token=str(cart_token),
            updated_at=updated_at,
            customer_id=str(customer_id) if customer_id is not None else None,
            email=payload.get("email") or None,
            abandoned_checkout_url=payload.get("abandoned_checkout_url"),
            total_price=str(total_price) if total_price is not None else None,
            line_items=list(payload.get("line_items") or []),
            created_at=parse_timestamp(payload.get("created_at")),
            completed_at=parse_timestamp(payload.get("completed_at")),
        )


@dataclass(slots=True, frozen=True)
class AbandonmentDecision:
    abandoned: bool
    elapsed_minutes: int


class NotificationStatus(str, enum.Enum):
    NOT_ABANDONED = "not_abandoned"
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class NotificationResult:
    decision: AbandonmentDecision
    status: NotificationStatus
    error: SyncErrorKind | None = None
    detail: str | None = None


def elapsed_minutes(updated_at: datetime, now: datetime) -> int:
    """Whole minutes from ``updated_at`` to ``now``; naive values are taken as UTC."""
    minutes = math.floor((parse_timestamp(now) - parse_timestamp(updated_at)).total_seconds() / 60)
    return max(minutes, 0)


def evaluate(
    event: CheckoutEvent,
    now: datetime,
    threshold_minutes: int = ABANDONMENT_THRESHOLD_MINUTES,
) -> AbandonmentDecision:
    if threshold_minutes < 1:
        raise ValueError(f"threshold_minutes must be positive, got {threshold_minutes}")
    elapsed = elapsed_minutes(event.updated_at, now)
    if event.completed_at is not None:
        return AbandonmentDecision(abandoned=False, elapsed_minutes=elapsed)
    return AbandonmentDecision(abandoned=elapsed >= threshold_minutes, elapsed_minutes=elapsed)


def notification_payload(event: CheckoutEvent, tenant: Tenant, decision: AbandonmentDecision) -> dict[str, Any]:
    return {
        "shop": tenant.shop_domain,
        "cartToken": event.cart_token,
        "customerId": event.customer_id,
        "email": event.email,
        "abandonedCheckoutUrl": event.abandoned_checkout_url,
        "totalPrice": event.total_price,
        "items": event.line_items,
        "createdAt": isoformat(event.created_at),
        "updatedAt": isoformat(event.updated_at),
        "minutesIdle": decision.elapsed_minutes,
    }


class AbandonmentDetector:
    """Evaluates checkout events and notifies the backend about abandoned ones.

    Holds no per-checkout state: a redelivered event is evaluated again and may
    notify again.
    """

    def __init__(
        self,
        store: CredentialStore,
        sink: ExternalSink,
        *,
        threshold_minutes: int = ABANDONMENT_THRESHOLD_MINUTES,
    ) -> None:
        self.store = store
        self.sink = sink
        self.threshold_minutes = threshold_minutes

    async def handle(self, event: CheckoutEvent, tenant: Tenant, now: datetime | None = None) -> NotificationResult:
        decision = evaluate(event, now or utc_now(), self.threshold_minutes)
        if not decision.abandoned:
            if event.completed_at is not None:
                logger.info("Checkout %s is already completed, skipping.", event.cart_token)
            else:
                logger.info(
                    "Checkout %s last updated %s minutes ago, not considered abandoned yet.",
                    event.cart_token,
                    decision.elapsed_minutes,
                )
            return NotificationResult(decision, NotificationStatus.NOT_ABANDONED)

        logger.info(
            "Abandoned cart detected for %s - Cart token: %s - Idle for %s minutes",
            tenant.shop_domain,
            event.cart_token,
            decision.elapsed_minutes,
        )
        credential = self.store.get(tenant.id)
        if not credential:
            error = NoCredential(tenant.id)
            logger.info("No API key configured for shop %s", tenant.shop_domain)
            return NotificationResult(decision, NotificationStatus.SKIPPED, error=error.kind, detail=str(error))

        try:
            await self.sink.post(notification_payload(event, tenant, decision), credential=credential)
        except SyncError as exc:
            failure = NotificationFailed(str(exc))
            logger.error("Error notifying external API about abandoned cart %s: %s", event.cart_token, exc)
            return NotificationResult(decision, NotificationStatus.FAILED, error=failure.kind, detail=str(failure))
        logger.info("Successfully notified external API about abandoned cart from %s", tenant.shop_domain)
        return NotificationResult(decision, NotificationStatus.SENT)
