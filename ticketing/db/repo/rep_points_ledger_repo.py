from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import uuid4

from ticketing.db.filters import eq, gt, in_
from ticketing.db.models.rep_points_ledger import RepPointsLedgerEntry
from ticketing.db.store import RecordStore


class RepPointsLedgerRepo:
    @staticmethod
    async def create(
        store: RecordStore,
        *,
        correlation_id: str,
        org_id: str,
        rep_id: str,
        points: int,
        source_type: str,
        source_ref: str | None,
        description: str,
        created_by: str | None,
        now_utc: datetime,
        currency: int = 0,
    ) -> RepPointsLedgerEntry:
        row = await store.insert(
            RepPointsLedgerEntry,
            {
                "id": str(uuid4()),
                "correlation_id": correlation_id,
                "org_id": org_id,
                "rep_id": rep_id,
                "points": points,
                "currency": currency,
                "source_type": source_type,
                "source_ref": source_ref,
                "description": description,
                "created_by": created_by,
                "balance_applied": False,
                "created_at": now_utc,
            },
        )
        return RepPointsLedgerEntry(**row)

    @staticmethod
    async def get_by_source(
        store: RecordStore,
        *,
        rep_id: str,
        source_type: str,
        source_ref: str,
    ) -> RepPointsLedgerEntry | None:
        rows = await store.select(
            RepPointsLedgerEntry,
            where=[eq("rep_id", rep_id), eq("source_type", source_type), eq("source_ref", source_ref)],
            limit=1,
        )
        return RepPointsLedgerEntry(**rows[0]) if rows else None

    @staticmethod
    async def sum_points(store: RecordStore, *, rep_id: str) -> int:
        total = await store.sum(RepPointsLedgerEntry, "points", where=[eq("rep_id", rep_id)])
        return int(total)

    @staticmethod
    async def sum_currency(store: RecordStore, *, rep_id: str) -> int:
        total = await store.sum(RepPointsLedgerEntry, "currency", where=[eq("rep_id", rep_id)])
        return int(total)

    @staticmethod
    async def mark_applied(store: RecordStore, *, entry_ids: Sequence[str]) -> int:
        return await store.update(
            RepPointsLedgerEntry,
            {"balance_applied": True},
            where=[in_("id", entry_ids), eq("balance_applied", False)],
        )

    @staticmethod
    async def count_unapplied_since(store: RecordStore, *, rep_id: str, since: datetime) -> int:
        return await store.count(
            RepPointsLedgerEntry,
            where=[eq("rep_id", rep_id), eq("balance_applied", False), gt("created_at", since)],
        )

    @staticmethod
    async def list_for_rep(
        store: RecordStore,
        *,
        rep_id: str,
        org_id: str,
        limit: int,
        offset: int,
    ) -> list[RepPointsLedgerEntry]:
        rows = await store.select(
            RepPointsLedgerEntry,
            where=[eq("rep_id", rep_id), eq("org_id", org_id)],
            order_by=["-created_at", "-seq"],
            limit=limit,
            offset=offset,
        )
        return [RepPointsLedgerEntry(**row) for row in rows]
