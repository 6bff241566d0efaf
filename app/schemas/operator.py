"""Operator-facing schemas."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.webhook_delivery import DeliveryOutcome


class WebhookDeliveryRead(BaseModel):
    id: int
    provider: str
    correlation_id: str
    payment_status: str
    pf_payment_id: str | None = None
    outcome: DeliveryOutcome
    error: str | None = None
    received_at: datetime
    processed_at: datetime | None = None
    replayed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ApiKeyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    user_id: int
    days_valid: int | None = Field(default=90, ge=1)


class ApiKeyCreateOut(BaseModel):
    """Returned once; the raw key is never shown again."""

    id: int
    name: str
    user_id: int
    key: str
    expires_at: datetime | None
