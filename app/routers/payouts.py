"""Payout history and payment statistics for the caller."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.payout import PaymentStats, PayoutItemRead
from app.security import require_actor, require_user
from app.services import payouts as payouts_service
from app.services import stats as stats_service
from app.services.ledger import Actor

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("/payouts", response_model=list[PayoutItemRead])
def my_payouts(db: Session = Depends(get_db), actor: Actor = Depends(require_user)):
    return payouts_service.list_payouts_for_user(db, actor.user_id)


@router.get("/stats", response_model=PaymentStats)
def payment_stats(db: Session = Depends(get_db), actor: Actor = Depends(require_actor)):
    return stats_service.payment_stats(db, actor=actor)
