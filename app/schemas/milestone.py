"""Schemas for milestone entities."""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.models.milestone import MilestoneStatus


class MilestonePlanEntry(BaseModel):
    description: str = Field(min_length=1, max_length=500)
    percentage: Decimal = Field(ge=Decimal("0"), le=Decimal("100"))
    due_date: datetime | None = None


class MilestoneRead(BaseModel):
    id: int
    escrow_id: int
    idx: int
    description: str
    percentage: Decimal
    amount: Decimal
    due_date: datetime | None = None
    status: MilestoneStatus
    submission_ref: str | None = None
    submission_notes: str | None = None
    client_notes: str | None = None
    revision_count: int
    max_revisions: int
    started_at: datetime | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    paid_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class MilestoneSubmit(BaseModel):
    submission_ref: str = Field(min_length=1, max_length=500)
    notes: str | None = Field(default=None, max_length=5000)


class MilestoneDecision(BaseModel):
    notes: str | None = Field(default=None, max_length=5000)


class PlanCorrection(BaseModel):
    """New percentages, one per milestone in index order."""

    percentages: list[Decimal] = Field(min_length=1)
