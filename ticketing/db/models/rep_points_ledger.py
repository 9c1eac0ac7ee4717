from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Identity,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from ticketing.db.models.base import Base


class RepPointsLedgerEntry(Base):
    __tablename__ = "rep_points_ledger"
    __table_args__ = (
        UniqueConstraint("rep_id", "source_type", "source_ref", name="uq_rep_points_ledger_source"),
        CheckConstraint("points <> 0 OR currency <> 0", name="ck_rep_points_ledger_amount_non_zero"),
        CheckConstraint(
            "source_type IN ('sale','manual','quest','redemption','refund')",
            name="ck_rep_points_ledger_source_type",
        ),
        Index("idx_rep_points_ledger_rep_created", "rep_id", "created_at"),
        Index(
            "idx_rep_points_ledger_rep_unapplied",
            "rep_id",
            "created_at",
            postgresql_where=text("NOT balance_applied"),
        ),
    )

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True)
    seq: Mapped[int] = mapped_column(BigInteger, Identity(), nullable=False)
    correlation_id: Mapped[str] = mapped_column(String(40), nullable=False)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    rep_id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), ForeignKey("reps.id"), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    source_type: Mapped[str] = mapped_column(String(16), nullable=False)
    source_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # Set once the cached balances on reps include this entry.
    balance_applied: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
