"""Jobs and applications, as far as the payment lifecycle needs them."""
from datetime import datetime
from uuid import uuid4
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import JSON, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, str_enum


class JobStatus(str, PyEnum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class JobPaymentStatus(str, PyEnum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"
    DISPUTED = "disputed"


class ApplicationStatus(str, PyEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class Job(Base):
    """A posted job. ``milestone_plan`` is a list of ``{description, percentage, due_date}``."""

    __tablename__ = "jobs"

    reference: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, default=lambda: uuid4().hex)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    client_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    budget: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    status: Mapped[JobStatus] = mapped_column(str_enum(JobStatus, "job_status"), default=JobStatus.OPEN, nullable=False)
    payment_status: Mapped[JobPaymentStatus] = mapped_column(
        str_enum(JobPaymentStatus, "job_payment_status"), default=JobPaymentStatus.UNPAID, nullable=False
    )
    accepted_freelancer_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    milestone_plan: Mapped[list | None] = mapped_column(JSON, nullable=True)


class Application(Base):
    """A freelancer's application to a job."""

    __tablename__ = "applications"

    reference: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, default=lambda: uuid4().hex)
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id"), nullable=False, index=True)
    freelancer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    status: Mapped[ApplicationStatus] = mapped_column(
        str_enum(ApplicationStatus, "application_status"), default=ApplicationStatus.PENDING, nullable=False
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
