from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from ticketing.db.models.base import Base


class Ticket(Base):
    __tablename__ = "tickets"
    __table_args__ = (
        UniqueConstraint("org_id", "ticket_code", name="uq_tickets_org_ticket_code"),
        UniqueConstraint("order_item_id", "slot", name="uq_tickets_order_item_slot"),
        CheckConstraint(
            "status IN ('valid','used','cancelled','expired')",
            name="ck_tickets_status",
        ),
        CheckConstraint("slot >= 0", name="ck_tickets_slot_non_negative"),
        Index("idx_tickets_order", "order_id"),
        Index("idx_tickets_type_status", "ticket_type_id", "status"),
    )

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    order_id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), ForeignKey("orders.id"), nullable=False)
    order_item_id: Mapped[str] = mapped_column(
        PG_UUID(as_uuid=False),
        ForeignKey("order_items.id"),
        nullable=False,
    )
    event_id: Mapped[str] = mapped_column(String(64), nullable=False)
    ticket_type_id: Mapped[str] = mapped_column(
        PG_UUID(as_uuid=False),
        ForeignKey("ticket_types.id"),
        nullable=False,
    )
    customer_id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), ForeignKey("customers.id"), nullable=False)
    slot: Mapped[int] = mapped_column(Integer, nullable=False)
    ticket_code: Mapped[str] = mapped_column(String(48), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="valid")
    holder_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    merch_size: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
