"""Dispute model definitions."""
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, str_enum
from .escrow import EscrowStatus


class DisputeStatus(str, PyEnum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"
    ESCALATED = "escalated"
    CANCELLED = "cancelled"


OPEN_DISPUTE_STATUSES = (DisputeStatus.PENDING, DisputeStatus.IN_REVIEW, DisputeStatus.ESCALATED)


class DisputeReason(str, PyEnum):
    QUALITY_ISSUE = "quality_issue"
    NON_DELIVERY = "non_delivery"
    SCOPE_CHANGE = "scope_change"
    PAYMENT_ISSUE = "payment_issue"
    COMMUNICATION_BREAKDOWN = "communication_breakdown"
    DEADLINE_MISSED = "deadline_missed"
    UNAUTHORIZED_USE = "unauthorized_use"
    OTHER = "other"


class ResolutionDecision(str, PyEnum):
    FAVOR_FREELANCER = "favor_freelancer"
    FAVOR_CLIENT = "favor_client"
    SPLIT = "split"
    NO_FAULT = "no_fault"
    MUTUAL = "mutual"


class Dispute(Base):
    """A claim by one party that freezes the escrow until an operator decides."""

    __tablename__ = "disputes"
    __table_args__ = (
        Index("ix_disputes_escrow_status", "escrow_id", "status"),
        Index("ix_disputes_raised_by", "raised_by_id"),
        Index("ix_disputes_counter_party", "counter_party_id"),
    )

    escrow_id: Mapped[int] = mapped_column(ForeignKey("escrows.id"), nullable=False)
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id"), nullable=False)
    raised_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    counter_party_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    reason: Mapped[DisputeReason] = mapped_column(str_enum(DisputeReason, "dispute_reason"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    evidence: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[DisputeStatus] = mapped_column(
        str_enum(DisputeStatus, "dispute_status"), nullable=False, default=DisputeStatus.PENDING
    )
    # Escrow status to restore when the dispute is cancelled.
    escrow_status_before: Mapped[EscrowStatus] = mapped_column(
        str_enum(EscrowStatus, "escrow_status"), nullable=False
    )
    resolution_decision: Mapped[ResolutionDecision | None] = mapped_column(
        str_enum(ResolutionDecision, "resolution_decision"), nullable=True
    )
    payment_adjustment: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    client_refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    resolution_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    response_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    escalated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
