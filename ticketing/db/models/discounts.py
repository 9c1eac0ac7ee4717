from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from ticketing.db.models.base import Base


class Discount(Base):
    __tablename__ = "discounts"
    __table_args__ = (
        UniqueConstraint("org_id", "code", name="uq_discounts_org_code"),
        CheckConstraint("discount_type IN ('percentage','fixed')", name="ck_discounts_type"),
        CheckConstraint("status IN ('active','inactive')", name="ck_discounts_status"),
        CheckConstraint("value >= 0", name="ck_discounts_value_non_negative"),
        CheckConstraint("used_count >= 0", name="ck_discounts_used_count_non_negative"),
        CheckConstraint("max_uses IS NULL OR max_uses > 0", name="ck_discounts_max_uses_positive"),
        CheckConstraint(
            "min_order_amount IS NULL OR min_order_amount >= 0",
            name="ck_discounts_min_order_amount_non_negative",
        ),
    )

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    code: Mapped[str] = mapped_column(String(32), nullable=False)
    rep_id: Mapped[str | None] = mapped_column(PG_UUID(as_uuid=False), ForeignKey("reps.id"), nullable=True)
    discount_type: Mapped[str] = mapped_column(String(16), nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)
    min_order_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    applicable_event_ids: Mapped[list[str] | None] = mapped_column(JSONB, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
