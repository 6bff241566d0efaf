"""Typed view of a PayFast ITN (instant transaction notification)."""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.utils.money import ZERO, to_money


class ProviderPaymentStatus(str, Enum):
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"
    PENDING = "PENDING"
    CANCELLED = "CANCELLED"


class CorrelationBundle(BaseModel):
    """Custom fields carried through checkout: job, freelancer, application."""

    job_ref: str | None = None
    freelancer_ref: str | None = None
    application_ref: str | None = None


class ProviderNotification(BaseModel):
    correlation_id: str = Field(min_length=1, max_length=64)
    pf_payment_id: str | None = None
    payment_status: ProviderPaymentStatus
    item_name: str | None = None
    item_description: str | None = None
    amount_gross: Decimal = ZERO
    amount_fee: Decimal = ZERO
    amount_net: Decimal = ZERO
    name_first: str | None = None
    name_last: str | None = None
    email_address: str | None = None
    merchant_id: str | None = None
    correlation: CorrelationBundle = Field(default_factory=CorrelationBundle)
    # Opaque copy of every field received, kept for audit.
    raw: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @field_validator("payment_status", mode="before")
    @classmethod
    def _upper_status(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("amount_gross", "amount_fee", "amount_net", mode="before")
    @classmethod
    def _money(cls, value: Any) -> Decimal:
        if value is None or value == "":
            return ZERO
        return to_money(value)

    @classmethod
    def from_fields(cls, fields: Mapping[str, str]) -> "ProviderNotification":
        def _opt(key: str) -> str | None:
            value = fields.get(key)
            return value.strip() if value and value.strip() else None

        # PayFast reports the fee as a negative number.
        fee = fields.get("amount_fee") or "0"
        return cls(
            correlation_id=(fields.get("m_payment_id") or "").strip(),
            pf_payment_id=_opt("pf_payment_id"),
            payment_status=fields.get("payment_status") or "",
            item_name=_opt("item_name"),
            item_description=_opt("item_description"),
            amount_gross=fields.get("amount_gross"),
            amount_fee=abs(to_money(fee)),
            amount_net=fields.get("amount_net"),
            name_first=_opt("name_first"),
            name_last=_opt("name_last"),
            email_address=_opt("email_address"),
            merchant_id=_opt("merchant_id"),
            correlation=CorrelationBundle(
                job_ref=_opt("custom_str1"),
                freelancer_ref=_opt("custom_str2"),
                application_ref=_opt("custom_str3"),
            ),
            raw={key: value for key, value in fields.items() if key != "signature"},
        )


class WebhookAck(BaseModel):
    ok: bool = True
    outcome: str
