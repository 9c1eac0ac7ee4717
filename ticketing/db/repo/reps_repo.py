from __future__ import annotations

from decimal import Decimal

from ticketing.db.filters import Increment, eq, ge
from ticketing.db.models.reps import Rep
from ticketing.db.store import RecordStore


class RepsRepo:
    @staticmethod
    async def get_by_id(store: RecordStore, rep_id: str, *, org_id: str | None = None) -> Rep | None:
        where = [eq("id", rep_id)]
        if org_id is not None:
            where.append(eq("org_id", org_id))
        rows = await store.select(Rep, where=where, limit=1)
        return Rep(**rows[0]) if rows else None

    @staticmethod
    async def list_for_org(store: RecordStore, *, org_id: str, status: str | None = None) -> list[Rep]:
        where = [eq("org_id", org_id)]
        if status is not None:
            where.append(eq("status", status))
        rows = await store.select(Rep, where=where)
        return [Rep(**row) for row in rows]

    @staticmethod
    async def list_ids(store: RecordStore, *, limit: int, offset: int = 0) -> list[tuple[str, str]]:
        rows = await store.select(Rep, order_by=["id"], limit=limit, offset=offset)
        return [(str(row["id"]), str(row["org_id"])) for row in rows]

    @staticmethod
    async def add_points(store: RecordStore, *, rep_id: str, points: int, currency: int = 0) -> int:
        values: dict[str, Increment] = {"points_balance": Increment(points)}
        if currency:
            values["currency_balance"] = Increment(currency)
        return await store.update(Rep, values, where=[eq("id", rep_id)])

    @staticmethod
    async def spend_points(store: RecordStore, *, rep_id: str, points: int) -> int:
        return await store.update(
            Rep,
            {"points_balance": Increment(-points)},
            where=[eq("id", rep_id), ge("points_balance", points)],
        )

    @staticmethod
    async def set_level_if_balance(store: RecordStore, *, rep_id: str, level: int, points_balance: int) -> int:
        return await store.update(
            Rep,
            {"level": level},
            where=[eq("id", rep_id), eq("points_balance", points_balance)],
        )

    @staticmethod
    async def overwrite_balance(
        store: RecordStore,
        *,
        rep_id: str,
        expected_balance: int,
        expected_currency: int,
        points_balance: int,
        currency_balance: int,
        level: int,
    ) -> int:
        return await store.update(
            Rep,
            {"points_balance": points_balance, "currency_balance": currency_balance, "level": level},
            where=[
                eq("id", rep_id),
                eq("points_balance", expected_balance),
                eq("currency_balance", expected_currency),
            ],
        )

    @staticmethod
    async def set_sales_aggregates(
        store: RecordStore,
        *,
        rep_id: str,
        total_sales: int,
        total_revenue: Decimal,
    ) -> int:
        return await store.update(
            Rep,
            {"total_sales": total_sales, "total_revenue": total_revenue},
            where=[eq("id", rep_id)],
        )
