from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from ticketing.db.models.base import Base


class RepMilestone(Base):
    __tablename__ = "rep_milestones"
    __table_args__ = (
        CheckConstraint(
            "milestone_type IN ('sales_count','revenue','points')",
            name="ck_rep_milestones_type",
        ),
        Index("idx_rep_milestones_reward", "reward_id"),
    )

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    reward_id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), ForeignKey("rep_rewards.id"), nullable=False)
    milestone_type: Mapped[str] = mapped_column(String(16), nullable=False)
    threshold_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    event_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
