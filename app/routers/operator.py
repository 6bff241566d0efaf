"""Operator back-office: dead-letter deliveries, payout batches, plan fixes, keys."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.db import get_db
from app.models import DeliveryOutcome, PayoutBatchStatus
from app.schemas.bank_account import BankAccountRead
from app.schemas.escrow import EscrowRead
from app.schemas.milestone import PlanCorrection
from app.schemas.operator import ApiKeyCreate, ApiKeyCreateOut, WebhookDeliveryRead
from app.schemas.payfast import WebhookAck
from app.schemas.payout import PayoutBatchDetail, PayoutBatchRead, PayoutRunRead
from app.security import require_operator
from app.services import api_keys as api_keys_service
from app.services import bank_accounts as bank_accounts_service
from app.services import milestones as milestones_service
from app.services import payouts as payouts_service
from app.services import webhooks
from app.services.ledger import Actor

router = APIRouter(prefix="/operator", tags=["operator"])


@router.get("/webhook-deliveries", response_model=list[WebhookDeliveryRead])
def list_webhook_deliveries(
    outcome: DeliveryOutcome | None = None,
    dead_letter_only: bool = True,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_operator),
):
    return webhooks.list_deliveries(db, outcome=outcome, dead_letter_only=dead_letter_only)


@router.post("/webhook-deliveries/{delivery_id}/replay", response_model=WebhookAck)
def replay_webhook_delivery(
    delivery_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_operator),
    settings: Settings = Depends(get_settings),
) -> WebhookAck:
    result = webhooks.replay_delivery(db, delivery_id, actor=actor, settings=settings)
    return WebhookAck(ok=result.error is None, outcome=result.outcome.value)


@router.get("/payout-batches", response_model=list[PayoutBatchRead])
def list_payout_batches(
    status: PayoutBatchStatus | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_operator),
):
    return payouts_service.list_batches(db, status=status)


@router.get("/payout-batches/{batch_id}", response_model=PayoutBatchDetail)
def get_payout_batch(batch_id: int, db: Session = Depends(get_db), actor: Actor = Depends(require_operator)):
    return payouts_service.get_batch(db, batch_id)


@router.post("/payouts/run", response_model=PayoutRunRead)
async def run_payouts(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_operator),
    settings: Settings = Depends(get_settings),
) -> PayoutRunRead:
    """Run the daily payout worker now."""

    result = await payouts_service.run_daily_payouts(db, settings=settings)
    return PayoutRunRead(
        batch_id=result.batch_id,
        reference=result.reference,
        status=result.status,
        completed=result.completed,
        failed=result.failed,
        exit_code=result.exit_code,
    )


@router.post("/escrows/{escrow_id}/milestone-plan", response_model=EscrowRead)
def correct_milestone_plan(
    escrow_id: int,
    payload: PlanCorrection,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_operator),
):
    return milestones_service.correct_plan(db, escrow_id, actor=actor, percentages=payload.percentages)


@router.post("/bank-accounts/{account_id}/verify", response_model=BankAccountRead)
def verify_bank_account(account_id: int, db: Session = Depends(get_db), actor: Actor = Depends(require_operator)):
    return bank_accounts_service.verify_account(db, account_id, actor=actor)


@router.post("/api-keys", response_model=ApiKeyCreateOut, status_code=status.HTTP_201_CREATED)
def create_api_key(
    payload: ApiKeyCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_operator),
) -> ApiKeyCreateOut:
    row, raw = api_keys_service.issue_key(
        db, name=payload.name, user_id=payload.user_id, days_valid=payload.days_valid, actor=actor.label
    )
    return ApiKeyCreateOut(id=row.id, name=row.name, user_id=row.user_id, key=raw, expires_at=row.expires_at)


@router.delete("/api-keys/{api_key_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_api_key(api_key_id: int, db: Session = Depends(get_db), actor: Actor = Depends(require_operator)) -> None:
    api_keys_service.revoke_key(db, api_key_id, actor=actor.label)
