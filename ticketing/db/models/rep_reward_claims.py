from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from ticketing.db.models.base import Base


class RepRewardClaim(Base):
    __tablename__ = "rep_reward_claims"
    __table_args__ = (
        UniqueConstraint("dedupe_key", name="uq_rep_reward_claims_dedupe_key"),
        CheckConstraint(
            "claim_type IN ('milestone','points_shop','manual')",
            name="ck_rep_reward_claims_type",
        ),
        CheckConstraint(
            "status IN ('claimed','fulfilled','cancelled')",
            name="ck_rep_reward_claims_status",
        ),
        CheckConstraint(
            "status <> 'cancelled' OR dedupe_key IS NULL",
            name="ck_rep_reward_claims_cancelled_releases_key",
        ),
        Index("idx_rep_reward_claims_rep_status", "rep_id", "status"),
    )

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    rep_id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), ForeignKey("reps.id"), nullable=False)
    reward_id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), ForeignKey("rep_rewards.id"), nullable=False)
    claim_type: Mapped[str] = mapped_column(String(16), nullable=False)
    milestone_id: Mapped[str | None] = mapped_column(
        PG_UUID(as_uuid=False),
        ForeignKey("rep_milestones.id"),
        nullable=True,
    )
    points_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="claimed")
    dedupe_key: Mapped[str | None] = mapped_column(String(160), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
