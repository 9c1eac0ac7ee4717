from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from ticketing.db.filters import Increment, eq, under_cap
from ticketing.db.models.discounts import Discount
from ticketing.db.store import RecordStore

DISCOUNT_CODE_CONSTRAINT = "uq_discounts_org_code"


class DiscountsRepo:
    @staticmethod
    async def create(
        store: RecordStore,
        *,
        org_id: str,
        code: str,
        discount_type: str,
        value: Decimal,
        rep_id: str | None,
        applicable_event_ids: list[str] | None,
        now_utc: datetime,
    ) -> Discount:
        row = await store.insert(
            Discount,
            {
                "id": str(uuid4()),
                "org_id": org_id,
                "code": code,
                "rep_id": rep_id,
                "discount_type": discount_type,
                "value": value,
                "used_count": 0,
                "applicable_event_ids": applicable_event_ids,
                "status": "active",
                "created_at": now_utc,
            },
        )
        return Discount(**row)

    @staticmethod
    async def get_by_id(store: RecordStore, discount_id: str) -> Discount | None:
        rows = await store.select(Discount, where=[eq("id", discount_id)], limit=1)
        return Discount(**rows[0]) if rows else None

    @staticmethod
    async def get_by_code(store: RecordStore, *, org_id: str, code: str) -> Discount | None:
        rows = await store.select(
            Discount,
            where=[eq("org_id", org_id), eq("code", code.strip().upper())],
            limit=1,
        )
        return Discount(**rows[0]) if rows else None

    @staticmethod
    async def list_ids(store: RecordStore, *, limit: int, offset: int = 0) -> list[str]:
        rows = await store.select(Discount, order_by=["id"], limit=limit, offset=offset)
        return [str(row["id"]) for row in rows]

    @staticmethod
    async def reserve_use(store: RecordStore, *, discount_id: str) -> bool:
        updated = await store.update(
            Discount,
            {"used_count": Increment(1)},
            where=[eq("id", discount_id), under_cap("used_count", "max_uses")],
        )
        return updated == 1

    @staticmethod
    async def set_used_count(store: RecordStore, *, discount_id: str, expected: int, used_count: int) -> int:
        return await store.update(
            Discount,
            {"used_count": used_count},
            where=[eq("id", discount_id), eq("used_count", expected)],
        )
