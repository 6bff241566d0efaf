"""Dispute schemas."""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.models.dispute import DisputeReason, DisputeStatus, ResolutionDecision
from app.models.escrow import EscrowStatus


class DisputeCreate(BaseModel):
    escrow_id: int
    reason: DisputeReason
    title: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=10, max_length=10000)
    evidence: list[str] = Field(default_factory=list, max_length=20)


class DisputeEvidence(BaseModel):
    evidence: list[str] = Field(min_length=1, max_length=20)


class DisputeResolve(BaseModel):
    decision: ResolutionDecision
    payment_adjustment: Decimal | None = Field(default=None, ge=Decimal("0"))
    summary: str = Field(min_length=1, max_length=10000)


class DisputeNote(BaseModel):
    note: str | None = Field(default=None, max_length=2000)


class DisputeRead(BaseModel):
    id: int
    escrow_id: int
    job_id: int
    raised_by_id: int
    counter_party_id: int
    reason: DisputeReason
    title: str
    description: str
    evidence: list[str]
    status: DisputeStatus
    escrow_status_before: EscrowStatus
    resolution_decision: ResolutionDecision | None = None
    payment_adjustment: Decimal | None = None
    client_refund_amount: Decimal | None = None
    resolution_summary: str | None = None
    resolved_by_id: int | None = None
    response_deadline: datetime | None = None
    created_at: datetime
    reviewed_at: datetime | None = None
    escalated_at: datetime | None = None
    resolved_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
