"""ledger_settlement_and_discount_limits

Revision ID: c5e8f2a1d934
Revises: 7d2e9a4c6b15
Create Date: 2026-10-19 10:15:00.000000
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "c5e8f2a1d934"
down_revision: str | None = "7d2e9a4c6b15"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.add_column("rep_points_ledger", sa.Column("seq", sa.BigInteger(), sa.Identity(), nullable=False))
    op.add_column(
        "rep_points_ledger",
        sa.Column("currency", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    # Existing entries were applied to the cached balances before this column existed.
    op.add_column(
        "rep_points_ledger",
        sa.Column("balance_applied", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )
    op.alter_column("rep_points_ledger", "balance_applied", server_default=sa.text("false"))

    op.drop_constraint("ck_rep_points_ledger_points_non_zero", "rep_points_ledger", type_="check")
    op.create_check_constraint(
        "ck_rep_points_ledger_amount_non_zero",
        "rep_points_ledger",
        "points <> 0 OR currency <> 0",
    )
    op.create_index(
        "idx_rep_points_ledger_rep_unapplied",
        "rep_points_ledger",
        ["rep_id", "created_at"],
        postgresql_where=sa.text("NOT balance_applied"),
    )

    # The only permitted update flips balance_applied to true and touches nothing else.
    op.execute(
        """
        CREATE OR REPLACE FUNCTION fn_rep_points_ledger_append_only()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            IF TG_OP = 'UPDATE'
               AND NEW.balance_applied
               AND NOT OLD.balance_applied
               AND (to_jsonb(NEW) - 'balance_applied') = (to_jsonb(OLD) - 'balance_applied') THEN
                RETURN NEW;
            END IF;
            RAISE EXCEPTION 'rep_points_ledger is append-only';
        END;
        $$;
        """
    )

    op.add_column("discounts", sa.Column("max_uses", sa.Integer(), nullable=True))
    op.add_column("discounts", sa.Column("min_order_amount", sa.Numeric(12, 2), nullable=True))
    op.add_column("discounts", sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True))
    op.add_column("discounts", sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True))
    op.create_check_constraint("ck_discounts_max_uses_positive", "discounts", "max_uses IS NULL OR max_uses > 0")
    op.create_check_constraint(
        "ck_discounts_min_order_amount_non_negative",
        "discounts",
        "min_order_amount IS NULL OR min_order_amount >= 0",
    )

    op.add_column("orders", sa.Column("discount_reserved_at", sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    op.drop_column("orders", "discount_reserved_at")

    op.drop_constraint("ck_discounts_min_order_amount_non_negative", "discounts", type_="check")
    op.drop_constraint("ck_discounts_max_uses_positive", "discounts", type_="check")
    op.drop_column("discounts", "expires_at")
    op.drop_column("discounts", "starts_at")
    op.drop_column("discounts", "min_order_amount")
    op.drop_column("discounts", "max_uses")

    op.execute(
        """
        CREATE OR REPLACE FUNCTION fn_rep_points_ledger_append_only()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            RAISE EXCEPTION 'rep_points_ledger is append-only';
        END;
        $$;
        """
    )
    op.drop_index("idx_rep_points_ledger_rep_unapplied", table_name="rep_points_ledger")
    op.drop_constraint("ck_rep_points_ledger_amount_non_zero", "rep_points_ledger", type_="check")
    op.create_check_constraint("ck_rep_points_ledger_points_non_zero", "rep_points_ledger", "points <> 0")
    op.drop_column("rep_points_ledger", "balance_applied")
    op.drop_column("rep_points_ledger", "currency")
    op.drop_column("rep_points_ledger", "seq")
