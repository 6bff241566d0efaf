"""Payout and statistics schemas."""
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from app.models.payout import PayoutBatchStatus, PayoutItemStatus, PayoutKind


class PayoutItemRead(BaseModel):
    id: int
    batch_id: int | None = None
    escrow_id: int
    milestone_id: int | None = None
    dispute_id: int | None = None
    kind: PayoutKind
    freelancer_id: int
    amount: Decimal
    fee_amount: Decimal
    status: PayoutItemStatus
    reference: str | None = None
    provider_ref: str | None = None
    error_message: str | None = None
    attempts: int
    created_at: datetime
    submitted_at: datetime | None = None
    completed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class PayoutBatchRead(BaseModel):
    id: int
    reference: str
    batch_date: date
    payout_count: int
    total_amount: Decimal
    total_fees: Decimal
    status: PayoutBatchStatus
    processed_at: datetime | None = None
    error_message: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PayoutBatchDetail(PayoutBatchRead):
    items: list[PayoutItemRead]


class PayoutRunRead(BaseModel):
    batch_id: int | None = None
    reference: str | None = None
    status: str
    completed: int
    failed: int
    exit_code: int


class PaymentStats(BaseModel):
    total_paid: Decimal
    total_received: Decimal
    held_in_escrow: Decimal
    pending_payouts: Decimal
    active_escrows: int
    open_disputes: int
