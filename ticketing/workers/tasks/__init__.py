from ticketing.workers.tasks.reconciliation import (
    heal_points_balances,
    reconcile_aggregates,
    repair_refunded_orders,
)

__all__ = [
    "heal_points_balances",
    "reconcile_aggregates",
    "repair_refunded_orders",
]
