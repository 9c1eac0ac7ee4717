from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from ticketing.db.filters import eq, in_
from ticketing.db.models.order_items import OrderItem
from ticketing.db.store import RecordStore


class OrderItemsRepo:
    @staticmethod
    async def create(
        store: RecordStore,
        *,
        org_id: str,
        order_id: str,
        ticket_type_id: str,
        qty: int,
        unit_price: Decimal,
        merch_size: str | None,
        now_utc: datetime,
    ) -> OrderItem:
        row = await store.insert(
            OrderItem,
            {
                "id": str(uuid4()),
                "org_id": org_id,
                "order_id": order_id,
                "ticket_type_id": ticket_type_id,
                "qty": qty,
                "unit_price": unit_price,
                "merch_size": merch_size,
                "created_at": now_utc,
            },
        )
        return OrderItem(**row)

    @staticmethod
    async def list_for_order(store: RecordStore, *, order_id: str) -> list[OrderItem]:
        rows = await store.select(OrderItem, where=[eq("order_id", order_id)], order_by=["created_at", "id"])
        return [OrderItem(**row) for row in rows]

    @staticmethod
    async def list_for_orders(store: RecordStore, *, order_ids: Iterable[str]) -> list[OrderItem]:
        ids = sorted(set(order_ids))
        if not ids:
            return []
        rows = await store.select(OrderItem, where=[in_("order_id", ids)])
        return [OrderItem(**row) for row in rows]
