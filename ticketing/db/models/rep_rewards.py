from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from ticketing.db.models.base import Base


class RepReward(Base):
    __tablename__ = "rep_rewards"
    __table_args__ = (
        CheckConstraint(
            "reward_type IN ('milestone','points_shop','manual')",
            name="ck_rep_rewards_type",
        ),
        CheckConstraint("status IN ('active','archived')", name="ck_rep_rewards_status"),
        CheckConstraint("points_cost IS NULL OR points_cost > 0", name="ck_rep_rewards_points_cost_positive"),
        CheckConstraint("total_claimed >= 0", name="ck_rep_rewards_total_claimed_non_negative"),
        CheckConstraint(
            "total_available IS NULL OR total_claimed <= total_available",
            name="ck_rep_rewards_total_claimed_le_available",
        ),
        Index("idx_rep_rewards_org_status", "org_id", "status"),
    )

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    reward_type: Mapped[str] = mapped_column(String(16), nullable=False)
    points_cost: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_available: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_claimed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
