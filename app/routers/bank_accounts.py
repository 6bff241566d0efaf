"""Freelancer bank account endpoints."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.bank_account import BankAccountRead, BankAccountUpsert
from app.security import require_user
from app.services import bank_accounts as bank_accounts_service
from app.services.ledger import Actor

router = APIRouter(prefix="/me/bank-accounts", tags=["bank-accounts"])


@router.get("", response_model=list[BankAccountRead])
def list_accounts(db: Session = Depends(get_db), actor: Actor = Depends(require_user)):
    return bank_accounts_service.list_accounts(db, actor.user_id)


@router.post("", response_model=BankAccountRead, status_code=status.HTTP_201_CREATED)
def create_account(payload: BankAccountUpsert, db: Session = Depends(get_db), actor: Actor = Depends(require_user)):
    return bank_accounts_service.upsert_account(db, payload, actor=actor)


@router.put("/{account_id}", response_model=BankAccountRead)
def update_account(
    account_id: int,
    payload: BankAccountUpsert,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_user),
):
    return bank_accounts_service.upsert_account(db, payload, actor=actor, account_id=account_id)
