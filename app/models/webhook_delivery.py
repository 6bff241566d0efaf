"""Provider webhook delivery log; failed rows form the operator dead-letter queue."""
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Index, JSON, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, str_enum


class DeliveryOutcome(str, PyEnum):
    RECEIVED = "received"
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    FAILED = "failed"
    TIMEOUT = "timeout"


DEAD_LETTER_OUTCOMES = (DeliveryOutcome.FAILED, DeliveryOutcome.TIMEOUT)


class WebhookDelivery(Base):
    """One signature-valid provider callback and what became of it."""

    __tablename__ = "webhook_deliveries"
    __table_args__ = (
        Index("ix_webhook_deliveries_correlation", "correlation_id"),
        Index("ix_webhook_deliveries_outcome", "outcome"),
    )

    provider: Mapped[str] = mapped_column(String(50), nullable=False, default="payfast")
    correlation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    pf_payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    outcome: Mapped[DeliveryOutcome] = mapped_column(
        str_enum(DeliveryOutcome, "delivery_outcome"), nullable=False, default=DeliveryOutcome.RECEIVED
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    replayed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
