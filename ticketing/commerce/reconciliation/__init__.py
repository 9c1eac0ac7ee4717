from ticketing.commerce.reconciliation.service import AggregateReconciler, CustomerAggregates, RepAggregates

__all__ = ["AggregateReconciler", "CustomerAggregates", "RepAggregates"]
