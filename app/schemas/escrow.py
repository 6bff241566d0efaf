"""Escrow schemas."""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.models.escrow import EscrowStatus, ReleaseSource
from app.schemas.dispute import DisputeRead
from app.schemas.milestone import MilestoneRead


class EscrowRead(BaseModel):
    id: int
    job_id: int
    application_id: int | None = None
    client_id: int
    freelancer_id: int
    correlation_id: str
    payment_provider_id: str | None = None
    gross_amount: Decimal
    fee_percent: Decimal
    platform_fee: Decimal
    net_amount: Decimal
    currency: str
    status: EscrowStatus
    plan_flagged: bool
    active_dispute_id: int | None = None
    release_source: ReleaseSource | None = None
    created_at: datetime
    held_at: datetime | None = None
    released_at: datetime | None = None
    refunded_at: datetime | None = None
    cancelled_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class EscrowDetail(EscrowRead):
    milestones: list[MilestoneRead] = Field(default_factory=list)
    active_dispute: DisputeRead | None = None
    paid_out: Decimal
    outstanding: Decimal


class EscrowActionPayload(BaseModel):
    note: str | None = Field(default=None, max_length=2000)


class EscrowEventRead(BaseModel):
    id: int
    kind: str
    actor: str
    data_json: dict
    at: datetime

    model_config = ConfigDict(from_attributes=True)
