from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from ticketing.db.filters import eq, gt
from ticketing.db.models.orders import Order
from ticketing.db.store import RecordStore


class OrdersRepo:
    @staticmethod
    async def get_by_id(store: RecordStore, order_id: str, *, org_id: str) -> Order | None:
        rows = await store.select(Order, where=[eq("id", order_id), eq("org_id", org_id)], limit=1)
        return Order(**rows[0]) if rows else None

    @staticmethod
    async def count_for_org(store: RecordStore, *, org_id: str) -> int:
        return await store.count(Order, where=[eq("org_id", org_id)])

    @staticmethod
    async def get_latest_for_org(store: RecordStore, *, org_id: str) -> Order | None:
        rows = await store.select(
            Order,
            where=[eq("org_id", org_id)],
            order_by=["-created_at", "-order_number"],
            limit=1,
        )
        return Order(**rows[0]) if rows else None

    @staticmethod
    async def create(
        store: RecordStore,
        *,
        order_id: str,
        org_id: str,
        customer_id: str,
        event_id: str,
        order_number: str,
        subtotal: Decimal,
        discount_amount: Decimal,
        total: Decimal,
        currency: str,
        discount_id: str | None,
        rep_id: str | None,
        now_utc: datetime,
    ) -> Order:
        row = await store.insert(
            Order,
            {
                "id": order_id,
                "org_id": org_id,
                "customer_id": customer_id,
                "event_id": event_id,
                "order_number": order_number,
                "status": "draft",
                "subtotal": subtotal,
                "discount_amount": discount_amount,
                "total": total,
                "currency": currency,
                "discount_id": discount_id,
                "rep_id": rep_id,
                "created_at": now_utc,
            },
        )
        return Order(**row)

    @staticmethod
    async def transition_status(
        store: RecordStore,
        *,
        order_id: str,
        org_id: str,
        from_status: str,
        to_status: str,
        values: dict[str, Any] | None = None,
    ) -> bool:
        updated = await store.update(
            Order,
            {"status": to_status, **(values or {})},
            where=[eq("id", order_id), eq("org_id", org_id), eq("status", from_status)],
        )
        return updated == 1

    @staticmethod
    async def list_completed_for_customer(store: RecordStore, *, customer_id: str) -> list[Order]:
        rows = await store.select(Order, where=[eq("customer_id", customer_id), eq("status", "completed")])
        return [Order(**row) for row in rows]

    @staticmethod
    async def list_completed_for_rep(store: RecordStore, *, rep_id: str) -> list[Order]:
        rows = await store.select(Order, where=[eq("rep_id", rep_id), eq("status", "completed")])
        return [Order(**row) for row in rows]

    @staticmethod
    async def count_completed_for_discount(store: RecordStore, *, discount_id: str) -> int:
        return await store.count(Order, where=[eq("discount_id", discount_id), eq("status", "completed")])

    @staticmethod
    async def list_by_status(
        store: RecordStore,
        *,
        status: str,
        limit: int,
        offset: int = 0,
    ) -> list[Order]:
        rows = await store.select(
            Order,
            where=[eq("status", status)],
            order_by=["created_at", "id"],
            limit=limit,
            offset=offset,
        )
        return [Order(**row) for row in rows]


    @staticmethod
    async def mark_discount_reserved(store: RecordStore, *, order_id: str, now_utc: datetime) -> int:
        return await store.update(
            Order,
            {"discount_reserved_at": now_utc},
            where=[eq("id", order_id), eq("status", "draft")],
        )

    @staticmethod
    async def count_reserving_drafts(store: RecordStore, *, discount_id: str, since: datetime) -> int:
        return await store.count(
            Order,
            where=[eq("discount_id", discount_id), eq("status", "draft"), gt("discount_reserved_at", since)],
        )
