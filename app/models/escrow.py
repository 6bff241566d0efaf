"""Escrow related models."""
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, str_enum


class EscrowStatus(str, PyEnum):
    """Status of an escrow record."""

    PENDING = "pending"
    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


class ReleaseSource(str, PyEnum):
    """Which path populated ``released_at``."""

    CLIENT = "client_release"
    MILESTONES = "milestones_paid"
    DISPUTE = "dispute_resolution"


class Escrow(Base):
    """Platform-held funds for one job between one client and one freelancer."""

    __tablename__ = "escrows"
    __table_args__ = (
        CheckConstraint("gross_amount >= 0", name="ck_escrow_gross_non_negative"),
        CheckConstraint("platform_fee >= 0", name="ck_escrow_fee_non_negative"),
        Index("ix_escrows_status", "status"),
        Index("ix_escrows_client", "client_id"),
        Index("ix_escrows_freelancer", "freelancer_id"),
    )

    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id"), nullable=False, index=True)
    application_id: Mapped[int | None] = mapped_column(ForeignKey("applications.id"), nullable=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    freelancer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    correlation_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    provider_transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("provider_transactions.id"), nullable=True
    )
    payment_provider_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    gross_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    fee_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ZAR")
    status: Mapped[EscrowStatus] = mapped_column(
        str_enum(EscrowStatus, "escrow_status"), default=EscrowStatus.PENDING, nullable=False
    )
    plan_flagged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Back-pointer resolved by lookup; the dispute owns the relation.
    active_dispute_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    release_source: Mapped[ReleaseSource | None] = mapped_column(
        str_enum(ReleaseSource, "release_source"), nullable=True
    )
    held_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    milestones = relationship(
        "Milestone",
        back_populates="escrow",
        order_by="Milestone.idx",
        cascade="all, delete-orphan",
    )
    events = relationship("EscrowEvent", back_populates="escrow", cascade="all, delete-orphan")


class EscrowEvent(Base):
    """Timeline event for an escrow record."""

    __tablename__ = "escrow_events"

    escrow_id: Mapped[int] = mapped_column(ForeignKey("escrows.id"), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    actor: Mapped[str] = mapped_column(String(100), nullable=False, default="system")
    data_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    escrow = relationship("Escrow", back_populates="events")


# Source -> permitted targets. Actor rules are enforced by the escrow services.
ALLOWED_TRANSITIONS: dict[EscrowStatus, frozenset[EscrowStatus]] = {
    EscrowStatus.PENDING: frozenset({EscrowStatus.HELD, EscrowStatus.CANCELLED}),
    EscrowStatus.HELD: frozenset({EscrowStatus.RELEASED, EscrowStatus.REFUNDED, EscrowStatus.DISPUTED}),
    EscrowStatus.RELEASED: frozenset({EscrowStatus.DISPUTED}),
    # HELD is reachable again only through a cancelled dispute.
    EscrowStatus.DISPUTED: frozenset({EscrowStatus.RELEASED, EscrowStatus.REFUNDED, EscrowStatus.HELD}),
    EscrowStatus.REFUNDED: frozenset(),
    EscrowStatus.CANCELLED: frozenset(),
}

TERMINAL_ESCROW_STATUSES = (EscrowStatus.RELEASED, EscrowStatus.REFUNDED, EscrowStatus.CANCELLED)
