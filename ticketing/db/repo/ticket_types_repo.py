from __future__ import annotations

from collections.abc import Iterable

from ticketing.db.filters import eq, in_
from ticketing.db.models.ticket_types import TicketType
from ticketing.db.store import RecordStore


class TicketTypesRepo:
    @staticmethod
    async def get_by_id(store: RecordStore, ticket_type_id: str) -> TicketType | None:
        rows = await store.select(TicketType, where=[eq("id", ticket_type_id)], limit=1)
        return TicketType(**rows[0]) if rows else None

    @staticmethod
    async def list_by_ids(store: RecordStore, *, org_id: str, ticket_type_ids: Iterable[str]) -> list[TicketType]:
        ids = sorted(set(ticket_type_ids))
        if not ids:
            return []
        rows = await store.select(TicketType, where=[eq("org_id", org_id), in_("id", ids)])
        return [TicketType(**row) for row in rows]

    @staticmethod
    async def list_ids(store: RecordStore, *, limit: int, offset: int = 0) -> list[str]:
        rows = await store.select(TicketType, order_by=["id"], limit=limit, offset=offset)
        return [str(row["id"]) for row in rows]

    @staticmethod
    async def set_sold(store: RecordStore, *, ticket_type_id: str, sold: int) -> int:
        return await store.update(TicketType, {"sold": sold}, where=[eq("id", ticket_type_id)])
