from __future__ import annotations

from sqlalchemy import CheckConstraint, UniqueConstraint

from ticketing.db.models import (  # noqa: F401
    Customer,
    Discount,
    Order,
    OrderItem,
    ReconciliationRun,
    Rep,
    RepMilestone,
    RepPointsLedgerEntry,
    RepReward,
    RepRewardClaim,
    SiteSetting,
    Ticket,
    TicketType,
)
from ticketing.db.models.base import Base


def _constraint_names(table_name: str, kind: type) -> set[str]:
    table = Base.metadata.tables[table_name]
    return {constraint.name for constraint in table.constraints if isinstance(constraint, kind)}


def test_all_commerce_tables_registered() -> None:
    expected_tables = {
        "customers",
        "discounts",
        "orders",
        "order_items",
        "reconciliation_runs",
        "reps",
        "rep_milestones",
        "rep_points_ledger",
        "rep_rewards",
        "rep_reward_claims",
        "site_settings",
        "tickets",
        "ticket_types",
    }
    assert expected_tables.issubset(set(Base.metadata.tables))


def test_uniqueness_constraints_present() -> None:
    assert "uq_tickets_org_ticket_code" in _constraint_names("tickets", UniqueConstraint)
    assert "uq_tickets_order_item_slot" in _constraint_names("tickets", UniqueConstraint)
    assert "uq_orders_org_order_number" in _constraint_names("orders", UniqueConstraint)
    assert "uq_discounts_org_code" in _constraint_names("discounts", UniqueConstraint)
    assert "uq_customers_org_email" in _constraint_names("customers", UniqueConstraint)
    assert "uq_rep_points_ledger_source" in _constraint_names("rep_points_ledger", UniqueConstraint)
    assert "uq_rep_reward_claims_dedupe_key" in _constraint_names("rep_reward_claims", UniqueConstraint)


def test_counter_checks_present() -> None:
    assert "ck_rep_rewards_total_claimed_le_available" in _constraint_names("rep_rewards", CheckConstraint)
    assert "ck_rep_points_ledger_amount_non_zero" in _constraint_names("rep_points_ledger", CheckConstraint)
    assert "ck_ticket_types_sold_non_negative" in _constraint_names("ticket_types", CheckConstraint)
    assert "ck_customers_total_spent_non_negative" in _constraint_names("customers", CheckConstraint)
    assert "ck_reconciliation_runs_status" in _constraint_names("reconciliation_runs", CheckConstraint)

    orders_indexes = {index.name for index in Base.metadata.tables["orders"].indexes}
    assert "idx_orders_rep_status" in orders_indexes
    assert "idx_orders_discount_status" in orders_indexes
