"""commerce_core_schema

Revision ID: 3b1f0c2d7a10
Revises:
Create Date: 2026-10-12 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "3b1f0c2d7a10"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=False)


def upgrade() -> None:
    op.create_table(
        "customers",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("org_id", sa.String(64), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False, server_default=sa.text("''")),
        sa.Column("last_name", sa.String(100), nullable=False, server_default=sa.text("''")),
        sa.Column("total_orders", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_spent", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("first_order_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_order_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("total_orders >= 0", name="ck_customers_total_orders_non_negative"),
        sa.CheckConstraint("total_spent >= 0", name="ck_customers_total_spent_non_negative"),
        sa.UniqueConstraint("org_id", "email", name="uq_customers_org_email"),
    )

    op.create_table(
        "ticket_types",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("org_id", sa.String(64), nullable=False),
        sa.Column("event_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("sold", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("sold >= 0", name="ck_ticket_types_sold_non_negative"),
        sa.CheckConstraint("capacity IS NULL OR capacity >= 0", name="ck_ticket_types_capacity_non_negative"),
        sa.CheckConstraint("price >= 0", name="ck_ticket_types_price_non_negative"),
    )
    op.create_index("idx_ticket_types_event", "ticket_types", ["org_id", "event_id"])

    op.create_table(
        "reps",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("org_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False, server_default=sa.text("''")),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("currency_balance", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_sales", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_revenue", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("level", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status IN ('pending','active','suspended','deactivated')", name="ck_reps_status"),
        sa.CheckConstraint("total_sales >= 0", name="ck_reps_total_sales_non_negative"),
        sa.CheckConstraint("total_revenue >= 0", name="ck_reps_total_revenue_non_negative"),
        sa.CheckConstraint("level >= 1", name="ck_reps_level_positive"),
    )
    op.create_index("idx_reps_org_status_revenue", "reps", ["org_id", "status", "total_revenue"])

    op.create_table(
        "discounts",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("org_id", sa.String(64), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("rep_id", _uuid(), nullable=True),
        sa.Column("discount_type", sa.String(16), nullable=False),
        sa.Column("value", sa.Numeric(12, 2), nullable=False),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("applicable_event_ids", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("discount_type IN ('percentage','fixed')", name="ck_discounts_type"),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_discounts_status"),
        sa.CheckConstraint("value >= 0", name="ck_discounts_value_non_negative"),
        sa.CheckConstraint("used_count >= 0", name="ck_discounts_used_count_non_negative"),
        sa.ForeignKeyConstraint(["rep_id"], ["reps.id"]),
        sa.UniqueConstraint("org_id", "code", name="uq_discounts_org_code"),
    )

    op.create_table(
        "orders",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("org_id", sa.String(64), nullable=False),
        sa.Column("customer_id", _uuid(), nullable=False),
        sa.Column("event_id", sa.String(64), nullable=False),
        sa.Column("order_number", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("discount_id", _uuid(), nullable=True),
        sa.Column("rep_id", _uuid(), nullable=True),
        sa.Column("refund_reason", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('draft','completed','refunded','failed')", name="ck_orders_status"),
        sa.CheckConstraint("total >= 0", name="ck_orders_total_non_negative"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["discount_id"], ["discounts.id"]),
        sa.ForeignKeyConstraint(["rep_id"], ["reps.id"]),
        sa.UniqueConstraint("org_id", "order_number", name="uq_orders_org_order_number"),
    )
    op.create_index("idx_orders_org_created", "orders", ["org_id", "created_at"])
    op.create_index("idx_orders_customer_status", "orders", ["customer_id", "status"])
    op.create_index("idx_orders_rep_status", "orders", ["rep_id", "status"])
    op.create_index("idx_orders_discount_status", "orders", ["discount_id", "status"])

    op.create_table(
        "order_items",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("org_id", sa.String(64), nullable=False),
        sa.Column("order_id", _uuid(), nullable=False),
        sa.Column("ticket_type_id", _uuid(), nullable=False),
        sa.Column("qty", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("merch_size", sa.String(16), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("qty > 0", name="ck_order_items_qty_positive"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["ticket_type_id"], ["ticket_types.id"]),
    )
    op.create_index("idx_order_items_order", "order_items", ["order_id"])

    op.create_table(
        "tickets",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("org_id", sa.String(64), nullable=False),
        sa.Column("order_id", _uuid(), nullable=False),
        sa.Column("order_item_id", _uuid(), nullable=False),
        sa.Column("event_id", sa.String(64), nullable=False),
        sa.Column("ticket_type_id", _uuid(), nullable=False),
        sa.Column("customer_id", _uuid(), nullable=False),
        sa.Column("slot", sa.Integer(), nullable=False),
        sa.Column("ticket_code", sa.String(48), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("holder_email", sa.String(320), nullable=True),
        sa.Column("merch_size", sa.String(16), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('valid','used','cancelled','expired')", name="ck_tickets_status"),
        sa.CheckConstraint("slot >= 0", name="ck_tickets_slot_non_negative"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["order_item_id"], ["order_items.id"]),
        sa.ForeignKeyConstraint(["ticket_type_id"], ["ticket_types.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.UniqueConstraint("org_id", "ticket_code", name="uq_tickets_org_ticket_code"),
        sa.UniqueConstraint("order_item_id", "slot", name="uq_tickets_order_item_slot"),
    )
    op.create_index("idx_tickets_order", "tickets", ["order_id"])
    op.create_index("idx_tickets_type_status", "tickets", ["ticket_type_id", "status"])

    op.create_table(
        "rep_points_ledger",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("correlation_id", sa.String(40), nullable=False),
        sa.Column("org_id", sa.String(64), nullable=False),
        sa.Column("rep_id", _uuid(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("source_type", sa.String(16), nullable=False),
        sa.Column("source_ref", sa.String(128), nullable=True),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("points <> 0", name="ck_rep_points_ledger_points_non_zero"),
        sa.CheckConstraint(
            "source_type IN ('sale','manual','quest','redemption','refund')",
            name="ck_rep_points_ledger_source_type",
        ),
        sa.ForeignKeyConstraint(["rep_id"], ["reps.id"]),
        sa.UniqueConstraint("rep_id", "source_type", "source_ref", name="uq_rep_points_ledger_source"),
    )
    op.create_index("idx_rep_points_ledger_rep_created", "rep_points_ledger", ["rep_id", "created_at"])

    op.create_table(
        "rep_rewards",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("org_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("reward_type", sa.String(16), nullable=False),
        sa.Column("points_cost", sa.Integer(), nullable=True),
        sa.Column("total_available", sa.Integer(), nullable=True),
        sa.Column("total_claimed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("reward_type IN ('milestone','points_shop','manual')", name="ck_rep_rewards_type"),
        sa.CheckConstraint("status IN ('active','archived')", name="ck_rep_rewards_status"),
        sa.CheckConstraint("points_cost IS NULL OR points_cost > 0", name="ck_rep_rewards_points_cost_positive"),
        sa.CheckConstraint("total_claimed >= 0", name="ck_rep_rewards_total_claimed_non_negative"),
        sa.CheckConstraint(
            "total_available IS NULL OR total_claimed <= total_available",
            name="ck_rep_rewards_total_claimed_le_available",
        ),
    )
    op.create_index("idx_rep_rewards_org_status", "rep_rewards", ["org_id", "status"])

    op.create_table(
        "rep_milestones",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("org_id", sa.String(64), nullable=False),
        sa.Column("reward_id", _uuid(), nullable=False),
        sa.Column("milestone_type", sa.String(16), nullable=False),
        sa.Column("threshold_value", sa.Numeric(12, 2), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("event_id", sa.String(64), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("milestone_type IN ('sales_count','revenue','points')", name="ck_rep_milestones_type"),
        sa.ForeignKeyConstraint(["reward_id"], ["rep_rewards.id"]),
    )
    op.create_index("idx_rep_milestones_reward", "rep_milestones", ["reward_id"])

    op.create_table(
        "rep_reward_claims",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("org_id", sa.String(64), nullable=False),
        sa.Column("rep_id", _uuid(), nullable=False),
        sa.Column("reward_id", _uuid(), nullable=False),
        sa.Column("claim_type", sa.String(16), nullable=False),
        sa.Column("milestone_id", _uuid(), nullable=True),
        sa.Column("points_spent", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("dedupe_key", sa.String(160), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("claim_type IN ('milestone','points_shop','manual')", name="ck_rep_reward_claims_type"),
        sa.CheckConstraint("status IN ('claimed','fulfilled','cancelled')", name="ck_rep_reward_claims_status"),
        sa.CheckConstraint(
            "status <> 'cancelled' OR dedupe_key IS NULL",
            name="ck_rep_reward_claims_cancelled_releases_key",
        ),
        sa.ForeignKeyConstraint(["rep_id"], ["reps.id"]),
        sa.ForeignKeyConstraint(["reward_id"], ["rep_rewards.id"]),
        sa.ForeignKeyConstraint(["milestone_id"], ["rep_milestones.id"]),
        sa.UniqueConstraint("dedupe_key", name="uq_rep_reward_claims_dedupe_key"),
    )
    op.create_index("idx_rep_reward_claims_rep_status", "rep_reward_claims", ["rep_id", "status"])

    op.create_table(
        "site_settings",
        sa.Column("key", sa.String(128), primary_key=True),
        sa.Column(
            "data",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "reconciliation_runs",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("kind", sa.String(48), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("examined", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("diff_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("status IN ('OK','DIFF','FAILED')", name="ck_reconciliation_runs_status"),
    )
    op.create_index("idx_reconciliation_runs_kind_started", "reconciliation_runs", ["kind", "started_at"])


def downgrade() -> None:
    op.drop_index("idx_reconciliation_runs_kind_started", table_name="reconciliation_runs")
    op.drop_table("reconciliation_runs")
    op.drop_table("site_settings")
    op.drop_index("idx_rep_reward_claims_rep_status", table_name="rep_reward_claims")
    op.drop_table("rep_reward_claims")
    op.drop_index("idx_rep_milestones_reward", table_name="rep_milestones")
    op.drop_table("rep_milestones")
    op.drop_index("idx_rep_rewards_org_status", table_name="rep_rewards")
    op.drop_table("rep_rewards")
    op.drop_index("idx_rep_points_ledger_rep_created", table_name="rep_points_ledger")
    op.drop_table("rep_points_ledger")
    op.drop_index("idx_tickets_type_status", table_name="tickets")
    op.drop_index("idx_tickets_order", table_name="tickets")
    op.drop_table("tickets")
    op.drop_index("idx_order_items_order", table_name="order_items")
    op.drop_table("order_items")
    op.drop_index("idx_orders_discount_status", table_name="orders")
    op.drop_index("idx_orders_rep_status", table_name="orders")
    op.drop_index("idx_orders_customer_status", table_name="orders")
    op.drop_index("idx_orders_org_created", table_name="orders")
    op.drop_table("orders")
    op.drop_table("discounts")
    op.drop_index("idx_reps_org_status_revenue", table_name="reps")
    op.drop_table("reps")
    op.drop_index("idx_ticket_types_event", table_name="ticket_types")
    op.drop_table("ticket_types")
    op.drop_table("customers")
