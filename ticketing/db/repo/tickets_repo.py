from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from ticketing.db.filters import eq, ne
from ticketing.db.models.tickets import Ticket
from ticketing.db.store import RecordStore

TICKET_CODE_CONSTRAINT = "uq_tickets_org_ticket_code"
TICKET_SLOT_CONSTRAINT = "uq_tickets_order_item_slot"


class TicketsRepo:
    @staticmethod
    async def create(store: RecordStore, *, ticket_code: str, values: dict[str, Any]) -> Ticket:
        row = await store.insert(
            Ticket,
            {
                "id": str(uuid4()),
                "status": "valid",
                **values,
                "ticket_code": ticket_code,
            },
        )
        return Ticket(**row)

    @staticmethod
    async def get_by_slot(store: RecordStore, *, order_item_id: str, slot: int) -> Ticket | None:
        rows = await store.select(
            Ticket,
            where=[eq("order_item_id", order_item_id), eq("slot", slot)],
            limit=1,
        )
        return Ticket(**rows[0]) if rows else None

    @staticmethod
    async def list_for_order(store: RecordStore, *, order_id: str) -> list[Ticket]:
        rows = await store.select(Ticket, where=[eq("order_id", order_id)], order_by=["created_at", "slot"])
        return [Ticket(**row) for row in rows]

    @staticmethod
    async def cancel_for_order(store: RecordStore, *, order_id: str, now_utc: datetime) -> int:
        return await store.update(
            Ticket,
            {"status": "cancelled", "cancelled_at": now_utc},
            where=[eq("order_id", order_id), ne("status", "cancelled")],
        )

    @staticmethod
    async def count_live_for_type(store: RecordStore, *, ticket_type_id: str) -> int:
        return await store.count(
            Ticket,
            where=[eq("ticket_type_id", ticket_type_id), ne("status", "cancelled")],
        )

    @staticmethod
    async def count_live_for_order(store: RecordStore, *, order_id: str) -> int:
        return await store.count(Ticket, where=[eq("order_id", order_id), ne("status", "cancelled")])
