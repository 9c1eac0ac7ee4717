from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from ticketing.db.models.base import Base


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("org_id", "order_number", name="uq_orders_org_order_number"),
        CheckConstraint(
            "status IN ('draft','completed','refunded','failed')",
            name="ck_orders_status",
        ),
        CheckConstraint("total >= 0", name="ck_orders_total_non_negative"),
        Index("idx_orders_org_created", "org_id", "created_at"),
        Index("idx_orders_customer_status", "customer_id", "status"),
        Index("idx_orders_rep_status", "rep_id", "status"),
        Index("idx_orders_discount_status", "discount_id", "status"),
    )

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), ForeignKey("customers.id"), nullable=False)
    event_id: Mapped[str] = mapped_column(String(64), nullable=False)
    order_number: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        server_default=text("0"),
    )
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    discount_id: Mapped[str | None] = mapped_column(
        PG_UUID(as_uuid=False),
        ForeignKey("discounts.id"),
        nullable=True,
    )
    rep_id: Mapped[str | None] = mapped_column(PG_UUID(as_uuid=False), ForeignKey("reps.id"), nullable=True)
    refund_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Set before a completion takes a use of the discount; drafts holding it are in flight.
    discount_reserved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
