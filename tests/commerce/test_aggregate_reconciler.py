from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from tests.commerce.commerce_fixtures import NOW_UTC, ORG_ID, seed_customer, seed_rep, seed_ticket_type
from ticketing.commerce.errors import RepNotFoundError
from ticketing.commerce.reconciliation.service import AggregateReconciler, CustomerAggregates
from ticketing.db.filters import eq
from ticketing.db.models.customers import Customer
from ticketing.db.models.discounts import Discount
from ticketing.db.models.order_items import OrderItem
from ticketing.db.models.orders import Order
from ticketing.db.models.reps import Rep
from ticketing.db.models.ticket_types import TicketType
from ticketing.db.models.tickets import Ticket
from ticketing.db.repo.discounts_repo import DiscountsRepo
from ticketing.db.repo.orders_repo import OrdersRepo
from ticketing.db.repo.tickets_repo import TicketsRepo


def _row(store, model, row_id: str) -> dict:
    return next(row for row in store.rows(model) if row["id"] == row_id)


async def _seed_order(
    store,
    *,
    customer_id: str,
    total: str,
    status: str = "completed",
    rep_id: str | None = None,
    discount_id: str | None = None,
    completed_offset_days: int = 0,
    discount_reserved_at: datetime | None = None,
) -> str:
    order_id = str(uuid4())
    await store.insert(
        Order,
        {
            "id": order_id,
            "org_id": ORG_ID,
            "customer_id": customer_id,
            "event_id": "event-1",
            "order_number": f"ORG-{uuid4().hex[:5]}",
            "status": status,
            "subtotal": Decimal(total),
            "total": Decimal(total),
            "currency": "GBP",
            "rep_id": rep_id,
            "discount_id": discount_id,
            "created_at": NOW_UTC,
            "completed_at": NOW_UTC + timedelta(days=completed_offset_days),
            "discount_reserved_at": discount_reserved_at,
        },
    )
    return order_id


async def _seed_item(store, *, order_id: str, qty: int) -> None:
    await store.insert(
        OrderItem,
        {
            "id": str(uuid4()),
            "org_id": ORG_ID,
            "order_id": order_id,
            "ticket_type_id": "type-1",
            "qty": qty,
            "unit_price": Decimal("10.00"),
            "created_at": NOW_UTC,
        },
    )


async def _seed_ticket(store, *, ticket_type_id: str, status: str = "valid") -> None:
    await store.insert(
        Ticket,
        {
            "id": str(uuid4()),
            "org_id": ORG_ID,
            "order_id": "order-1",
            "order_item_id": str(uuid4()),
            "event_id": "event-1",
            "ticket_type_id": ticket_type_id,
            "customer_id": "customer-1",
            "slot": 0,
            "ticket_code": f"ORG-{uuid4().hex[:8].upper()}",
            "status": status,
            "created_at": NOW_UTC,
        },
    )


@pytest.mark.asyncio
async def test_ticket_type_sold_counts_live_tickets_only(store) -> None:
    ticket_type_id = await seed_ticket_type(store)
    await store.update(TicketType, {"sold": 99}, where=[eq("id", ticket_type_id)])
    for status in ("valid", "used", "cancelled"):
        await _seed_ticket(store, ticket_type_id=ticket_type_id, status=status)

    sold = await AggregateReconciler(store).reconcile_ticket_type_sold(ticket_type_id)

    assert sold == 2
    assert _row(store, TicketType, ticket_type_id)["sold"] == 2


@pytest.mark.asyncio
async def test_ticket_type_sold_follows_concurrent_source_changes(store, monkeypatch) -> None:
    ticket_type_id = await seed_ticket_type(store)
    observed = iter([3, 4, 4])

    async def _moving_count(_store, *, ticket_type_id: str) -> int:
        return next(observed)

    monkeypatch.setattr(TicketsRepo, "count_live_for_type", _moving_count)

    sold = await AggregateReconciler(store).reconcile_ticket_type_sold(ticket_type_id)

    assert sold == 4
    assert _row(store, TicketType, ticket_type_id)["sold"] == 4


@pytest.mark.asyncio
async def test_customer_aggregates_cover_completed_orders_only(store) -> None:
    customer_id = await seed_customer(store)
    await _seed_order(store, customer_id=customer_id, total="10.00", completed_offset_days=0)
    await _seed_order(store, customer_id=customer_id, total="15.50", completed_offset_days=3)
    await _seed_order(store, customer_id=customer_id, total="40.00", status="refunded")
    await _seed_order(store, customer_id=customer_id, total="7.00", status="draft")

    reconciler = AggregateReconciler(store)
    aggregates = await reconciler.reconcile_customer_aggregates(customer_id)
    replay = await reconciler.reconcile_customer_aggregates(customer_id)

    assert aggregates == CustomerAggregates(total_orders=2, total_spent=Decimal("25.50"))
    assert replay == aggregates
    customer = _row(store, Customer, customer_id)
    assert customer["total_orders"] == 2
    assert customer["total_spent"] == Decimal("25.50")
    assert customer["first_order_at"] == NOW_UTC
    assert customer["last_order_at"] == NOW_UTC + timedelta(days=3)


@pytest.mark.asyncio
async def test_customer_without_orders_resets_to_zero(store) -> None:
    customer_id = await seed_customer(store)
    await store.update(Customer, {"total_orders": 4, "total_spent": Decimal("99")}, where=[eq("id", customer_id)])

    aggregates = await AggregateReconciler(store).reconcile_customer_aggregates(customer_id)

    assert aggregates.total_orders == 0
    assert aggregates.total_spent == Decimal("0")
    assert _row(store, Customer, customer_id)["first_order_at"] is None


@pytest.mark.asyncio
async def test_rep_aggregates_recompute_sales_and_leave_balances_to_the_ledger(store) -> None:
    rep_id = await seed_rep(store, points_balance=75, total_sales=40, total_revenue=Decimal("999"))
    customer_id = await seed_customer(store)
    first = await _seed_order(store, customer_id=customer_id, total="30.00", rep_id=rep_id)
    second = await _seed_order(store, customer_id=customer_id, total="12.50", rep_id=rep_id)
    refunded = await _seed_order(store, customer_id=customer_id, total="50.00", rep_id=rep_id, status="refunded")
    await _seed_item(store, order_id=first, qty=3)
    await _seed_item(store, order_id=second, qty=1)
    await _seed_item(store, order_id=refunded, qty=5)

    aggregates = await AggregateReconciler(store).reconcile_rep_aggregates(rep_id, org_id=ORG_ID)

    assert aggregates.total_sales == 4
    assert aggregates.total_revenue == Decimal("42.50")
    assert aggregates.points_balance == 75
    rep = _row(store, Rep, rep_id)
    assert rep["total_sales"] == 4
    assert rep["total_revenue"] == Decimal("42.50")
    assert rep["points_balance"] == 75


@pytest.mark.asyncio
async def test_rep_aggregates_for_unknown_rep(store) -> None:
    with pytest.raises(RepNotFoundError):
        await AggregateReconciler(store).reconcile_rep_aggregates("missing", org_id=ORG_ID)


@pytest.mark.asyncio
async def test_discount_usage_counts_completed_orders(store) -> None:
    customer_id = await seed_customer(store)
    discount_id = str(uuid4())
    await store.insert(
        Discount,
        {
            "id": discount_id,
            "org_id": ORG_ID,
            "code": "REP-ALICE000001",
            "discount_type": "percentage",
            "value": Decimal("10"),
            "used_count": 9,
            "created_at": NOW_UTC,
        },
    )
    await _seed_order(store, customer_id=customer_id, total="10.00", discount_id=discount_id)
    await _seed_order(store, customer_id=customer_id, total="10.00", discount_id=discount_id, status="refunded")

    used = await AggregateReconciler(store).reconcile_discount_usage(discount_id)

    assert used == 1
    assert _row(store, Discount, discount_id)["used_count"] == 1


async def _seed_discount(store, *, used_count: int, max_uses: int | None = None) -> str:
    discount_id = str(uuid4())
    await store.insert(
        Discount,
        {
            "id": discount_id,
            "org_id": ORG_ID,
            "code": f"REP-BEN{uuid4().hex[:6].upper()}",
            "discount_type": "fixed",
            "value": Decimal("5"),
            "used_count": used_count,
            "max_uses": max_uses,
            "created_at": NOW_UTC,
        },
    )
    return discount_id


@pytest.mark.asyncio
async def test_discount_usage_waits_for_recently_reserved_drafts(store) -> None:
    customer_id = await seed_customer(store)
    discount_id = await _seed_discount(store, used_count=2, max_uses=2)
    await _seed_order(store, customer_id=customer_id, total="10.00", discount_id=discount_id)
    await _seed_order(
        store,
        customer_id=customer_id,
        total="10.00",
        discount_id=discount_id,
        status="draft",
        discount_reserved_at=NOW_UTC,
    )
    reconciler = AggregateReconciler(store)

    during = await reconciler.reconcile_discount_usage(discount_id, now_utc=NOW_UTC + timedelta(seconds=30))

    assert during == 2
    assert _row(store, Discount, discount_id)["used_count"] == 2

    # An abandoned reservation stops counting once the grace has passed.
    later = await reconciler.reconcile_discount_usage(discount_id, now_utc=NOW_UTC + timedelta(hours=1))

    assert later == 1
    assert _row(store, Discount, discount_id)["used_count"] == 1


@pytest.mark.asyncio
async def test_discount_usage_write_is_guarded_against_concurrent_reservations(store, monkeypatch) -> None:
    customer_id = await seed_customer(store)
    discount_id = await _seed_discount(store, used_count=3)
    await _seed_order(store, customer_id=customer_id, total="10.00", discount_id=discount_id)
    original_count = OrdersRepo.count_completed_for_discount
    reserved: list[bool] = []

    async def _count_then_reserve(store_, *, discount_id: str) -> int:
        completed = await original_count(store_, discount_id=discount_id)
        if not reserved:
            reserved.append(await DiscountsRepo.reserve_use(store_, discount_id=discount_id))
        return completed

    monkeypatch.setattr(OrdersRepo, "count_completed_for_discount", _count_then_reserve)

    used = await AggregateReconciler(store).reconcile_discount_usage(discount_id)

    # The first write loses its guard; the second pass starts from the incremented count.
    assert reserved == [True]
    assert used == 1
    assert _row(store, Discount, discount_id)["used_count"] == 1
