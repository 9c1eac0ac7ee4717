from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

import httpx
import structlog

from ticketing.core.config import Settings, get_settings
from ticketing.db.models.orders import Order

logger = structlog.get_logger(__name__)

NOTIFICATION_TIMEOUT_SECONDS = 5.0


class OrderNotifier(Protocol):
    async def order_completed(self, *, order: Order, ticket_codes: Sequence[str]) -> None: ...


class LoggingOrderNotifier:
    async def order_completed(self, *, order: Order, ticket_codes: Sequence[str]) -> None:
        logger.info(
            "order_notification_logged",
            order_id=order.id,
            order_number=order.order_number,
            tickets=len(ticket_codes),
        )


class WebhookOrderNotifier:
    def __init__(self, url: str, *, timeout: float = NOTIFICATION_TIMEOUT_SECONDS) -> None:
        self._url = url
        self._timeout = timeout

    async def order_completed(self, *, order: Order, ticket_codes: Sequence[str]) -> None:
        body = {
            "event": "order.completed",
            "order_id": order.id,
            "org_id": order.org_id,
            "order_number": order.order_number,
            "customer_id": order.customer_id,
            "event_id": order.event_id,
            "total": str(order.total),
            "currency": order.currency,
            "ticket_codes": list(ticket_codes),
        }
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(self._url, json=body)
            response.raise_for_status()
        logger.info("order_notification_sent", order_id=order.id, order_number=order.order_number)


def build_order_notifier(settings: Settings | None = None) -> OrderNotifier:
    resolved = settings or get_settings()
    url = resolved.order_notification_webhook_url.strip()
    if url:
        return WebhookOrderNotifier(url)
    return LoggingOrderNotifier()
