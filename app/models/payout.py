"""Payout batch and item models."""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, str_enum


class PayoutBatchStatus(str, PyEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class PayoutItemStatus(str, PyEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PayoutKind(str, PyEnum):
    """Which obligation a payout item settles."""

    MILESTONE = "milestone"
    RELEASE = "release"
    DISPUTE = "dispute"


TERMINAL_ITEM_STATUSES = (PayoutItemStatus.COMPLETED, PayoutItemStatus.FAILED)


class PayoutBatch(Base):
    """One run of the daily payout worker."""

    __tablename__ = "payout_batches"

    reference: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    batch_date: Mapped[date] = mapped_column(Date, nullable=False)
    payout_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    total_fees: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    status: Mapped[PayoutBatchStatus] = mapped_column(
        str_enum(PayoutBatchStatus, "payout_batch_status"), nullable=False, default=PayoutBatchStatus.PENDING
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    items = relationship("PayoutItem", back_populates="batch", order_by="PayoutItem.id")


class PayoutItem(Base):
    """A single outbound transfer to a freelancer's bank account."""

    __tablename__ = "payout_items"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payout_item_positive_amount"),
        Index("ix_payout_items_status", "status"),
        Index("ix_payout_items_escrow_status", "escrow_id", "status"),
    )

    batch_id: Mapped[int | None] = mapped_column(ForeignKey("payout_batches.id"), nullable=True, index=True)
    escrow_id: Mapped[int] = mapped_column(ForeignKey("escrows.id"), nullable=False)
    milestone_id: Mapped[int | None] = mapped_column(ForeignKey("milestones.id"), nullable=True, index=True)
    dispute_id: Mapped[int | None] = mapped_column(ForeignKey("disputes.id"), nullable=True)
    kind: Mapped[PayoutKind] = mapped_column(str_enum(PayoutKind, "payout_kind"), nullable=False)
    freelancer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    fee_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    status: Mapped[PayoutItemStatus] = mapped_column(
        str_enum(PayoutItemStatus, "payout_item_status"), nullable=False, default=PayoutItemStatus.PENDING
    )
    reference: Mapped[str | None] = mapped_column(String(80), nullable=True)
    provider_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    batch = relationship("PayoutBatch", back_populates="items")
    escrow = relationship("Escrow")
    milestone = relationship("Milestone")
