from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, Numeric, String, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from ticketing.db.models.base import Base


class Rep(Base):
    __tablename__ = "reps"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','active','suspended','deactivated')",
            name="ck_reps_status",
        ),
        CheckConstraint("total_sales >= 0", name="ck_reps_total_sales_non_negative"),
        CheckConstraint("total_revenue >= 0", name="ck_reps_total_revenue_non_negative"),
        CheckConstraint("level >= 1", name="ck_reps_level_positive"),
        Index("idx_reps_org_status_revenue", "org_id", "status", "total_revenue"),
    )

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="", server_default=text("''"))
    display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    points_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    currency_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    total_sales: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    total_revenue: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        server_default=text("0"),
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default=text("1"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
