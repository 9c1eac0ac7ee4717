from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from ticketing.db.errors import UniqueViolationError
from ticketing.db.filters import Increment, eq, ge, in_, under_cap
from ticketing.db.memory_store import MemoryRecordStore
from ticketing.db.models.rep_rewards import RepReward
from ticketing.db.models.reps import Rep
from ticketing.db.models.tickets import Ticket

NOW_UTC = datetime(2026, 3, 14, tzinfo=timezone.utc)


def _rep(rep_id: str, **overrides) -> dict[str, object]:
    values: dict[str, object] = {"id": rep_id, "org_id": "org", "first_name": "Ada", "created_at": NOW_UTC}
    values.update(overrides)
    return values


@pytest.mark.asyncio
async def test_insert_fills_scalar_defaults_and_returns_copy() -> None:
    store = MemoryRecordStore()

    row = await store.insert(Rep, _rep("rep-1"))
    row["points_balance"] = 999

    stored = store.rows(Rep)[0]
    assert stored["points_balance"] == 0
    assert stored["status"] == "pending"
    assert stored["level"] == 1
    assert stored["total_revenue"] == Decimal("0")


@pytest.mark.asyncio
async def test_insert_enforces_primary_key_and_unique_constraints() -> None:
    store = MemoryRecordStore()
    ticket = {
        "id": "ticket-1",
        "org_id": "org",
        "order_item_id": "item-1",
        "slot": 0,
        "ticket_code": "ORG-AAAAAAAA",
        "created_at": NOW_UTC,
    }
    await store.insert(Ticket, ticket)

    with pytest.raises(UniqueViolationError) as code_clash:
        await store.insert(Ticket, {**ticket, "id": "ticket-2", "slot": 1})
    with pytest.raises(UniqueViolationError) as slot_clash:
        await store.insert(Ticket, {**ticket, "id": "ticket-3", "ticket_code": "ORG-BBBBBBBB"})
    with pytest.raises(ValueError):
        await store.insert(Ticket, {**ticket, "id": None})

    assert code_clash.value.constraint == "uq_tickets_org_ticket_code"
    assert slot_clash.value.constraint == "uq_tickets_order_item_slot"
    assert len(store.rows(Ticket)) == 1


@pytest.mark.asyncio
async def test_unique_check_skips_keys_with_nulls() -> None:
    store = MemoryRecordStore()
    await store.insert(Ticket, {"id": "ticket-1", "org_id": "org", "ticket_code": None, "created_at": NOW_UTC})
    await store.insert(Ticket, {"id": "ticket-2", "org_id": "org", "ticket_code": None, "created_at": NOW_UTC})

    assert len(store.rows(Ticket)) == 2


@pytest.mark.asyncio
async def test_unknown_columns_and_unguarded_updates_are_rejected() -> None:
    store = MemoryRecordStore()

    with pytest.raises(ValueError):
        await store.insert(Rep, _rep("rep-1", nickname="Ace"))
    with pytest.raises(ValueError):
        await store.update(Rep, {"level": 2}, where=[])


@pytest.mark.asyncio
async def test_guarded_increment_applies_only_when_filters_match() -> None:
    store = MemoryRecordStore()
    await store.insert(Rep, _rep("rep-1", points_balance=50))

    spent = await store.update(
        Rep,
        {"points_balance": Increment(-80)},
        where=[eq("id", "rep-1"), ge("points_balance", 80)],
    )
    earned = await store.update(Rep, {"points_balance": Increment(30)}, where=[eq("id", "rep-1")])

    assert spent == 0
    assert earned == 1
    assert store.rows(Rep)[0]["points_balance"] == 80


@pytest.mark.asyncio
async def test_under_cap_filter_serializes_concurrent_reservations() -> None:
    store = MemoryRecordStore()
    await store.insert(
        RepReward,
        {
            "id": "reward-1",
            "org_id": "org",
            "name": "Cap",
            "reward_type": "points_shop",
            "total_available": 3,
            "created_at": NOW_UTC,
        },
    )

    results = await asyncio.gather(
        *(
            store.update(
                RepReward,
                {"total_claimed": Increment(1)},
                where=[eq("id", "reward-1"), under_cap("total_claimed", "total_available")],
            )
            for _ in range(10)
        )
    )

    assert sum(results) == 3
    assert store.rows(RepReward)[0]["total_claimed"] == 3


@pytest.mark.asyncio
async def test_select_orders_paginates_and_filters() -> None:
    store = MemoryRecordStore()
    for rep_id, revenue in (("rep-1", "10"), ("rep-2", "30"), ("rep-3", "20")):
        await store.insert(Rep, _rep(rep_id, total_revenue=Decimal(revenue)))

    ordered = await store.select(Rep, order_by=["-total_revenue", "id"])
    page = await store.select(Rep, order_by=["id"], limit=1, offset=1)
    subset = await store.select(Rep, where=[in_("id", ["rep-1", "rep-3"])])

    assert [row["id"] for row in ordered] == ["rep-2", "rep-3", "rep-1"]
    assert [row["id"] for row in page] == ["rep-2"]
    assert {row["id"] for row in subset} == {"rep-1", "rep-3"}
    assert await store.count(Rep, where=[eq("org_id", "org")]) == 3
    assert await store.sum(Rep, "total_revenue") == Decimal("60")
    assert await store.sum(Rep, "points_balance", where=[eq("id", "missing")]) == 0


@pytest.mark.asyncio
async def test_every_statement_is_counted() -> None:
    store = MemoryRecordStore()
    await store.ping()
    await store.count(Rep)

    assert store.statements == 2
