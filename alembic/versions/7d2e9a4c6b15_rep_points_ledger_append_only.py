"""rep_points_ledger_append_only

Revision ID: 7d2e9a4c6b15
Revises: 3b1f0c2d7a10
Create Date: 2026-10-12 09:30:00.000000
"""

from collections.abc import Sequence

from alembic import op

revision: str = "7d2e9a4c6b15"
down_revision: str | None = "3b1f0c2d7a10"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
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
    op.execute(
        """
        CREATE TRIGGER trg_rep_points_ledger_append_only
        BEFORE UPDATE OR DELETE ON rep_points_ledger
        FOR EACH ROW
        EXECUTE FUNCTION fn_rep_points_ledger_append_only();
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_rep_points_ledger_append_only ON rep_points_ledger;")
    op.execute("DROP FUNCTION IF EXISTS fn_rep_points_ledger_append_only();")
