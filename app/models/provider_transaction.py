"""PayFast transaction rows, keyed by the platform correlation id."""
from decimal import Decimal

from sqlalchemy import JSON, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ProviderTransaction(Base):
    """Append-or-update record of what the provider reported for a checkout."""

    __tablename__ = "provider_transactions"
    __table_args__ = (Index("ix_provider_transactions_pf_payment_id", "pf_payment_id"),)

    correlation_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    pf_payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    amount_gross: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    amount_fee: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    amount_net: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    item_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    item_description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    email_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    merchant_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    job_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)
    freelancer_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)
    application_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # Last payment_status whose side effects were applied; the idempotence fingerprint.
    last_processed_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    raw_json: Mapped[dict] = mapped_column(JSON, nullable=False)
