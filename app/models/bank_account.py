"""Freelancer bank account model."""
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, str_enum


class BankAccountType(str, PyEnum):
    SAVINGS = "savings"
    CHECKING = "checking"
    CURRENT = "current"


class FreelancerBankAccount(Base):
    """Destination account for payouts. At most one primary verified account per freelancer."""

    __tablename__ = "freelancer_bank_accounts"
    __table_args__ = (
        Index(
            "uq_bank_accounts_primary_verified",
            "user_id",
            unique=True,
            sqlite_where=text("is_primary = 1 AND is_verified = 1"),
            postgresql_where=text("is_primary AND is_verified"),
        ),
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    bank_name: Mapped[str] = mapped_column(String(100), nullable=False)
    account_holder_name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_number: Mapped[str] = mapped_column(String(34), nullable=False)
    branch_code: Mapped[str] = mapped_column(String(20), nullable=False)
    account_type: Mapped[BankAccountType] = mapped_column(
        str_enum(BankAccountType, "bank_account_type"), nullable=False, default=BankAccountType.SAVINGS
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
