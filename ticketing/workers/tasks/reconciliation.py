from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import structlog
from celery.schedules import crontab

from ticketing.commerce.ledger.service import LedgerStore
from ticketing.commerce.orders.service import OrderFulfillmentService
from ticketing.commerce.reconciliation.service import AggregateReconciler
from ticketing.db.repo.customers_repo import CustomersRepo
from ticketing.db.repo.discounts_repo import DiscountsRepo
from ticketing.db.repo.orders_repo import OrdersRepo
from ticketing.db.repo.reconciliation_runs_repo import ReconciliationRunsRepo
from ticketing.db.repo.reps_repo import RepsRepo
from ticketing.db.repo.ticket_types_repo import TicketTypesRepo
from ticketing.db.store import RecordStore
from ticketing.services.alerts import send_ops_alert
from ticketing.workers.asyncio_runner import run_async_job
from ticketing.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

SWEEP_BATCH_SIZE = 200


def reconciliation_status(*, diff_count: int, errors: int) -> str:
    if errors > 0:
        return "FAILED"
    return "DIFF" if diff_count > 0 else "OK"


async def _finish_run(
    store: RecordStore,
    *,
    kind: str,
    started_at: datetime,
    summary: dict[str, int],
    diff_count: int,
    alert_event: str = "commerce_reconciliation_diff_detected",
) -> dict[str, int | str]:
    status = reconciliation_status(diff_count=diff_count, errors=summary.get("errors", 0))
    await ReconciliationRunsRepo.create(
        store,
        kind=kind,
        started_at=started_at,
        finished_at=datetime.now(timezone.utc),
        status=status,
        examined=summary.get("examined", 0),
        diff_count=diff_count,
    )

    result: dict[str, int | str] = {"kind": kind, "status": status, "diff_count": diff_count, **summary}
    if status != "OK":
        await send_ops_alert(event=alert_event, payload=result)
        logger.warning("commerce_reconciliation_diff_detected", **result)
    else:
        logger.info("commerce_reconciliation_finished", **result)
    return result


async def _sweep(
    *,
    fetch: Callable[[int, int], Awaitable[list]],
    visit: Callable[[object], Awaitable[bool]],
    summary: dict[str, int],
    diff_key: str,
    error_event: str,
    batch_size: int,
) -> None:
    offset = 0
    while True:
        batch = await fetch(batch_size, offset)
        if not batch:
            return
        offset += len(batch)
        for item in batch:
            summary["examined"] += 1
            try:
                if await visit(item):
                    summary[diff_key] += 1
            except Exception:
                summary["errors"] += 1
                logger.exception(error_event, item=str(item))


async def heal_points_balances_async(store: RecordStore, *, batch_size: int = SWEEP_BATCH_SIZE) -> dict[str, int | str]:
    """Re-sums every rep's ledger and overwrites cached balances that drifted."""
    started_at = datetime.now(timezone.utc)
    ledger = LedgerStore(store)
    summary = {"examined": 0, "healed": 0, "deferred": 0, "errors": 0}

    async def visit(item: object) -> bool:
        rep_id, org_id = item
        check = await ledger.rebalance(rep_id=rep_id, org_id=org_id)
        if check.deferred:
            summary["deferred"] += 1
        return check.healed

    await _sweep(
        fetch=lambda limit, offset: RepsRepo.list_ids(store, limit=limit, offset=offset),
        visit=visit,
        summary=summary,
        diff_key="healed",
        error_event="points_balance_heal_failed",
        batch_size=batch_size,
    )
    return await _finish_run(
        store,
        kind="points_balances",
        started_at=started_at,
        summary=summary,
        diff_count=summary["healed"],
    )


async def reconcile_aggregates_async(store: RecordStore, *, batch_size: int = SWEEP_BATCH_SIZE) -> dict[str, int | str]:
    started_at = datetime.now(timezone.utc)
    reconciler = AggregateReconciler(store)
    summary = {"examined": 0, "corrected": 0, "errors": 0}

    async def visit_ticket_type(item: object) -> bool:
        before = await TicketTypesRepo.get_by_id(store, str(item))
        sold = await reconciler.reconcile_ticket_type_sold(str(item))
        return before is not None and before.sold != sold

    async def visit_customer(item: object) -> bool:
        before = await CustomersRepo.get_by_id(store, str(item))
        after = await reconciler.reconcile_customer_aggregates(str(item))
        return before is not None and (before.total_orders, before.total_spent) != (
            after.total_orders,
            after.total_spent,
        )

    async def visit_rep(item: object) -> bool:
        rep_id, org_id = item
        before = await RepsRepo.get_by_id(store, rep_id, org_id=org_id)
        after = await reconciler.reconcile_rep_aggregates(rep_id, org_id=org_id)
        return before is not None and (before.total_sales, before.total_revenue) != (
            after.total_sales,
            after.total_revenue,
        )

    async def visit_discount(item: object) -> bool:
        before = await DiscountsRepo.get_by_id(store, str(item))
        used_count = await reconciler.reconcile_discount_usage(str(item))
        return before is not None and before.used_count != used_count

    sweeps = (
        (TicketTypesRepo.list_ids, visit_ticket_type),
        (CustomersRepo.list_ids, visit_customer),
        (RepsRepo.list_ids, visit_rep),
        (DiscountsRepo.list_ids, visit_discount),
    )
    for list_ids, visit in sweeps:
        await _sweep(
            fetch=lambda limit, offset, list_ids=list_ids: list_ids(store, limit=limit, offset=offset),
            visit=visit,
            summary=summary,
            diff_key="corrected",
            error_event="aggregate_reconciliation_sweep_failed",
            batch_size=batch_size,
        )
    return await _finish_run(
        store,
        kind="aggregates",
        started_at=started_at,
        summary=summary,
        diff_count=summary["corrected"],
    )


async def repair_refunded_orders_async(
    store: RecordStore,
    *,
    batch_size: int = SWEEP_BATCH_SIZE,
) -> dict[str, int | str]:
    """Finishes refunds whose ticket cancellation or sale reversal did not complete."""
    started_at = datetime.now(timezone.utc)
    service = OrderFulfillmentService(store)
    summary = {"examined": 0, "repaired": 0, "errors": 0}

    async def visit(item: object) -> bool:
        order_id, org_id = item
        if not await service.needs_refund_repair(order_id=order_id, org_id=org_id):
            return False
        await service.repair_refund(order_id=order_id, org_id=org_id, now_utc=datetime.now(timezone.utc))
        return True

    async def fetch(limit: int, offset: int) -> list[tuple[str, str]]:
        orders = await OrdersRepo.list_by_status(store, status="refunded", limit=limit, offset=offset)
        return [(order.id, order.org_id) for order in orders]

    await _sweep(
        fetch=fetch,
        visit=visit,
        summary=summary,
        diff_key="repaired",
        error_event="refund_repair_failed",
        batch_size=batch_size,
    )
    return await _finish_run(
        store,
        kind="refund_repair",
        started_at=started_at,
        summary=summary,
        diff_count=summary["repaired"],
        alert_event="refund_repair_required",
    )


@celery_app.task(name="ticketing.workers.tasks.reconciliation.heal_points_balances")
def heal_points_balances(batch_size: int = SWEEP_BATCH_SIZE) -> dict[str, int | str]:
    return run_async_job(lambda store: heal_points_balances_async(store, batch_size=batch_size))


@celery_app.task(name="ticketing.workers.tasks.reconciliation.reconcile_aggregates")
def reconcile_aggregates(batch_size: int = SWEEP_BATCH_SIZE) -> dict[str, int | str]:
    return run_async_job(lambda store: reconcile_aggregates_async(store, batch_size=batch_size))


@celery_app.task(name="ticketing.workers.tasks.reconciliation.repair_refunded_orders")
def repair_refunded_orders(batch_size: int = SWEEP_BATCH_SIZE) -> dict[str, int | str]:
    return run_async_job(lambda store: repair_refunded_orders_async(store, batch_size=batch_size))


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "heal-points-balances-every-10-minutes": {
            "task": "ticketing.workers.tasks.reconciliation.heal_points_balances",
            "schedule": 600.0,
            "options": {"queue": "q_normal"},
        },
        "repair-refunded-orders-every-15-minutes": {
            "task": "ticketing.workers.tasks.reconciliation.repair_refunded_orders",
            "schedule": 900.0,
            "options": {"queue": "q_high"},
        },
        "reconcile-aggregates-hourly": {
            "task": "ticketing.workers.tasks.reconciliation.reconcile_aggregates",
            "schedule": 3600.0,
            "options": {"queue": "q_normal"},
        },
        "reconcile-aggregates-nightly-0330-utc": {
            "task": "ticketing.workers.tasks.reconciliation.reconcile_aggregates",
            "schedule": crontab(hour=3, minute=30),
            "options": {"queue": "q_normal"},
        },
    }
)
