"""Milestone model definitions."""
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, str_enum


class MilestoneStatus(str, PyEnum):
    """Possible statuses for a milestone."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


class Milestone(Base):
    """A partial-release point of an escrow, ordered by ``idx`` (1-based)."""

    __tablename__ = "milestones"
    __table_args__ = (
        UniqueConstraint("escrow_id", "idx", name="uq_milestone_idx"),
        CheckConstraint("idx > 0", name="ck_milestone_positive_idx"),
        CheckConstraint("percentage >= 0", name="ck_milestone_percentage_non_negative"),
        CheckConstraint("revision_count >= 0", name="ck_milestone_revision_count_non_negative"),
    )

    escrow_id: Mapped[int] = mapped_column(ForeignKey("escrows.id"), nullable=False, index=True)
    idx: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    # Net amount owed to the freelancer for this milestone.
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[MilestoneStatus] = mapped_column(
        str_enum(MilestoneStatus, "milestone_status"), nullable=False, default=MilestoneStatus.PENDING
    )
    submission_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)
    submission_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    client_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    revision_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_revisions: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    escrow = relationship("Escrow", back_populates="milestones")
