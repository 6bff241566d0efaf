"""Schema package exports."""
from .bank_account import BankAccountRead, BankAccountUpsert
from .dispute import DisputeCreate, DisputeEvidence, DisputeNote, DisputeRead, DisputeResolve
from .escrow import EscrowActionPayload, EscrowDetail, EscrowEventRead, EscrowRead
from .milestone import MilestoneDecision, MilestonePlanEntry, MilestoneRead, MilestoneSubmit, PlanCorrection
from .notification import NotificationRead
from .operator import ApiKeyCreate, ApiKeyCreateOut, WebhookDeliveryRead
from .payfast import CorrelationBundle, ProviderNotification, ProviderPaymentStatus, WebhookAck
from .payout import PaymentStats, PayoutBatchDetail, PayoutBatchRead, PayoutItemRead, PayoutRunRead

__all__ = [
    "ApiKeyCreate",
    "ApiKeyCreateOut",
    "BankAccountRead",
    "BankAccountUpsert",
    "CorrelationBundle",
    "DisputeCreate",
    "DisputeEvidence",
    "DisputeNote",
    "DisputeRead",
    "DisputeResolve",
    "EscrowActionPayload",
    "EscrowDetail",
    "EscrowEventRead",
    "EscrowRead",
    "MilestoneDecision",
    "MilestonePlanEntry",
    "MilestoneRead",
    "MilestoneSubmit",
    "NotificationRead",
    "PaymentStats",
    "PayoutBatchDetail",
    "PayoutBatchRead",
    "PayoutItemRead",
    "PayoutRunRead",
    "PlanCorrection",
    "ProviderNotification",
    "ProviderPaymentStatus",
    "WebhookAck",
    "WebhookDeliveryRead",
]
