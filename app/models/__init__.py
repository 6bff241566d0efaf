"""ORM models package."""
from .api_key import ApiKey
from .audit import AuditLog
from .bank_account import BankAccountType, FreelancerBankAccount
from .base import Base
from .dispute import Dispute, DisputeReason, DisputeStatus, ResolutionDecision
from .escrow import ALLOWED_TRANSITIONS, Escrow, EscrowEvent, EscrowStatus, ReleaseSource
from .job import Application, ApplicationStatus, Job, JobPaymentStatus, JobStatus
from .milestone import Milestone, MilestoneStatus
from .notification import Notification
from .payout import PayoutBatch, PayoutBatchStatus, PayoutItem, PayoutItemStatus, PayoutKind
from .provider_transaction import ProviderTransaction
from .scheduler_lock import SchedulerLock
from .user import User
from .webhook_delivery import DeliveryOutcome, WebhookDelivery

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ApiKey",
    "Application",
    "ApplicationStatus",
    "AuditLog",
    "BankAccountType",
    "Base",
    "DeliveryOutcome",
    "Dispute",
    "DisputeReason",
    "DisputeStatus",
    "Escrow",
    "EscrowEvent",
    "EscrowStatus",
    "FreelancerBankAccount",
    "Job",
    "JobPaymentStatus",
    "JobStatus",
    "Milestone",
    "MilestoneStatus",
    "Notification",
    "PayoutBatch",
    "PayoutBatchStatus",
    "PayoutItem",
    "PayoutItemStatus",
    "PayoutKind",
    "ProviderTransaction",
    "ReleaseSource",
    "ResolutionDecision",
    "SchedulerLock",
    "User",
    "WebhookDelivery",
]
