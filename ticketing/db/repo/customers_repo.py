from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from ticketing.db.filters import eq
from ticketing.db.models.customers import Customer
from ticketing.db.store import RecordStore


class CustomersRepo:
    @staticmethod
    async def get_by_id(store: RecordStore, customer_id: str) -> Customer | None:
        rows = await store.select(Customer, where=[eq("id", customer_id)], limit=1)
        return Customer(**rows[0]) if rows else None

    @staticmethod
    async def get_by_email(store: RecordStore, *, org_id: str, email: str) -> Customer | None:
        rows = await store.select(
            Customer,
            where=[eq("org_id", org_id), eq("email", email.strip().lower())],
            limit=1,
        )
        return Customer(**rows[0]) if rows else None

    @staticmethod
    async def create(
        store: RecordStore,
        *,
        org_id: str,
        email: str,
        first_name: str,
        last_name: str,
        now_utc: datetime,
    ) -> Customer:
        row = await store.insert(
            Customer,
            {
                "id": str(uuid4()),
                "org_id": org_id,
                "email": email.strip().lower(),
                "first_name": first_name,
                "last_name": last_name,
                "total_orders": 0,
                "total_spent": Decimal("0"),
                "created_at": now_utc,
            },
        )
        return Customer(**row)

    @staticmethod
    async def set_aggregates(
        store: RecordStore,
        *,
        customer_id: str,
        total_orders: int,
        total_spent: Decimal,
        first_order_at: datetime | None,
        last_order_at: datetime | None,
    ) -> int:
        return await store.update(
            Customer,
            {
                "total_orders": total_orders,
                "total_spent": total_spent,
                "first_order_at": first_order_at,
                "last_order_at": last_order_at,
            },
            where=[eq("id", customer_id)],
        )

    @staticmethod
    async def list_ids(store: RecordStore, *, limit: int, offset: int = 0) -> list[str]:
        rows = await store.select(Customer, order_by=["id"], limit=limit, offset=offset)
        return [str(row["id"]) for row in rows]
