from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import TypeVar

import structlog

from ticketing.commerce.errors import DiscountNotFoundError, RepNotFoundError
from ticketing.db.repo.customers_repo import CustomersRepo
from ticketing.db.repo.discounts_repo import DiscountsRepo
from ticketing.db.repo.order_items_repo import OrderItemsRepo
from ticketing.db.repo.orders_repo import OrdersRepo
from ticketing.db.repo.reps_repo import RepsRepo
from ticketing.db.repo.ticket_types_repo import TicketTypesRepo
from ticketing.db.repo.tickets_repo import TicketsRepo
from ticketing.db.store import RecordStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")
MAX_SETTLE_PASSES = 3
RESERVATION_GRACE = timedelta(minutes=5)


@dataclass(frozen=True, slots=True)
class CustomerAggregates:
    total_orders: int
    total_spent: Decimal


@dataclass(frozen=True, slots=True)
class RepAggregates:
    total_sales: int
    total_revenue: Decimal
    points_balance: int
    level: int


@dataclass(frozen=True, slots=True)
class _CustomerSnapshot:
    aggregates: CustomerAggregates
    first_order_at: datetime | None
    last_order_at: datetime | None


class AggregateReconciler:
    """Recomputes cached counters from their source rows.

    Every method is idempotent. A write is followed by a re-read of the source, and
    when a concurrent request moved the source in between, the newer value is written.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def _settle(
        self,
        *,
        aggregate: str,
        entity_id: str,
        compute: Callable[[], Awaitable[T]],
        write: Callable[[T], Awaitable[object]],
    ) -> T:
        value = await compute()
        for _ in range(MAX_SETTLE_PASSES):
            await write(value)
            latest = await compute()
            if latest == value:
                return value
            value = latest

        logger.warning("aggregate_reconciliation_unsettled", aggregate=aggregate, entity_id=entity_id)
        return value

    async def reconcile_ticket_type_sold(self, ticket_type_id: str) -> int:
        async def compute() -> int:
            live = await TicketsRepo.count_live_for_type(self._store, ticket_type_id=ticket_type_id)
            return max(0, live)

        async def write(sold: int) -> None:
            await TicketTypesRepo.set_sold(self._store, ticket_type_id=ticket_type_id, sold=sold)

        return await self._settle(aggregate="ticket_type_sold", entity_id=ticket_type_id, compute=compute, write=write)

    async def _customer_snapshot(self, customer_id: str) -> _CustomerSnapshot:
        orders = await OrdersRepo.list_completed_for_customer(self._store, customer_id=customer_id)
        completed_at = sorted(order.completed_at or order.created_at for order in orders)
        return _CustomerSnapshot(
            aggregates=CustomerAggregates(
                total_orders=len(orders),
                total_spent=sum((Decimal(order.total) for order in orders), Decimal("0")),
            ),
            first_order_at=completed_at[0] if completed_at else None,
            last_order_at=completed_at[-1] if completed_at else None,
        )

    async def reconcile_customer_aggregates(self, customer_id: str) -> CustomerAggregates:
        async def write(snapshot: _CustomerSnapshot) -> None:
            await CustomersRepo.set_aggregates(
                self._store,
                customer_id=customer_id,
                total_orders=snapshot.aggregates.total_orders,
                total_spent=snapshot.aggregates.total_spent,
                first_order_at=snapshot.first_order_at,
                last_order_at=snapshot.last_order_at,
            )

        settled = await self._settle(
            aggregate="customer_aggregates",
            entity_id=customer_id,
            compute=lambda: self._customer_snapshot(customer_id),
            write=write,
        )
        return settled.aggregates

    async def _rep_sales(self, rep_id: str) -> tuple[int, Decimal]:
        orders = await OrdersRepo.list_completed_for_rep(self._store, rep_id=rep_id)
        items = await OrderItemsRepo.list_for_orders(self._store, order_ids=[order.id for order in orders])
        total_sales = sum(item.qty for item in items)
        total_revenue = sum((Decimal(order.total) for order in orders), Decimal("0"))
        return total_sales, total_revenue

    async def reconcile_rep_aggregates(self, rep_id: str, *, org_id: str) -> RepAggregates:
        """Recomputes sales and revenue; cached balances belong to the ledger heal."""
        rep = await RepsRepo.get_by_id(self._store, rep_id, org_id=org_id)
        if rep is None:
            raise RepNotFoundError(rep_id)

        async def write(value: tuple[int, Decimal]) -> None:
            await RepsRepo.set_sales_aggregates(
                self._store,
                rep_id=rep_id,
                total_sales=value[0],
                total_revenue=value[1],
            )

        total_sales, total_revenue = await self._settle(
            aggregate="rep_sales",
            entity_id=rep_id,
            compute=lambda: self._rep_sales(rep_id),
            write=write,
        )

        refreshed = await RepsRepo.get_by_id(self._store, rep_id, org_id=org_id)
        if refreshed is None:
            raise RepNotFoundError(rep_id)
        return RepAggregates(
            total_sales=total_sales,
            total_revenue=total_revenue,
            points_balance=refreshed.points_balance,
            level=refreshed.level,
        )

    async def reconcile_discount_usage(self, discount_id: str, *, now_utc: datetime | None = None) -> int:
        """Sets ``used_count`` to the number of completed orders using the discount.

        Completions take a use with a capped increment before their transition, so
        the recount waits while a draft holds a recent reservation, and each write is
        guarded on the count it replaces.
        """
        since = (now_utc or datetime.now(timezone.utc)) - RESERVATION_GRACE
        used_count = 0
        for _ in range(MAX_SETTLE_PASSES):
            discount = await DiscountsRepo.get_by_id(self._store, discount_id)
            if discount is None:
                raise DiscountNotFoundError(discount_id)
            used_count = discount.used_count
            if await OrdersRepo.count_reserving_drafts(self._store, discount_id=discount_id, since=since):
                logger.info("discount_usage_heal_deferred", discount_id=discount_id, used_count=used_count)
                return used_count

            completed = await OrdersRepo.count_completed_for_discount(self._store, discount_id=discount_id)
            if completed == used_count:
                return used_count
            if await DiscountsRepo.set_used_count(
                self._store,
                discount_id=discount_id,
                expected=used_count,
                used_count=completed,
            ):
                return completed

        logger.warning("aggregate_reconciliation_unsettled", aggregate="discount_usage", entity_id=discount_id)
        return used_count
