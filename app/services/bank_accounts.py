"""Freelancer payout destinations."""
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import FreelancerBankAccount
from app.schemas.bank_account import BankAccountUpsert
from app.services.ledger import Actor
from app.utils.audit import log_audit, mask_account_number
from app.utils.errors import Forbidden, NotFound
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

_DETAIL_FIELDS = ("bank_name", "account_holder_name", "account_number", "branch_code", "account_type")


def list_accounts(db: Session, user_id: int) -> list[FreelancerBankAccount]:
    stmt = (
        select(FreelancerBankAccount)
        .where(FreelancerBankAccount.user_id == user_id)
        .order_by(FreelancerBankAccount.id)
    )
    return list(db.scalars(stmt))


def get_primary_verified(db: Session, user_id: int) -> FreelancerBankAccount | None:
    stmt = select(FreelancerBankAccount).where(
        FreelancerBankAccount.user_id == user_id,
        FreelancerBankAccount.is_primary.is_(True),
        FreelancerBankAccount.is_verified.is_(True),
    )
    return db.scalars(stmt).first()


def _demote_others(db: Session, user_id: int, keep_id: int | None) -> None:
    for account in list_accounts(db, user_id):
        if account.id != keep_id and account.is_primary:
            account.is_primary = False
    db.flush()


def upsert_account(
    db: Session, payload: BankAccountUpsert, *, actor: Actor, account_id: int | None = None
) -> FreelancerBankAccount:
    """Create or update the caller's account. Changing bank details clears verification."""

    if actor.user_id is None:
        raise Forbidden("Bank accounts belong to a user.")
    data = payload.model_dump()
    if account_id is None:
        account = FreelancerBankAccount(user_id=actor.user_id, **data)
        db.add(account)
        action = "BANK_ACCOUNT_CREATED"
    else:
        account = db.get(FreelancerBankAccount, account_id)
        if account is None or account.user_id != actor.user_id:
            raise NotFound("Bank account not found.", code="BANK_ACCOUNT_NOT_FOUND")
        changed = any(getattr(account, name) != data[name] for name in _DETAIL_FIELDS)
        for name, value in data.items():
            setattr(account, name, value)
        if changed:
            account.is_verified = False
            account.verified_at = None
        action = "BANK_ACCOUNT_UPDATED"

    if account.is_primary:
        _demote_others(db, actor.user_id, account.id)
    db.flush()
    log_audit(
        db,
        actor=actor.label,
        action=action,
        entity="FreelancerBankAccount",
        entity_id=account.id,
        data={"bank_name": account.bank_name, "account_number": mask_account_number(account.account_number)},
    )
    db.commit()
    db.refresh(account)
    return account


def verify_account(db: Session, account_id: int, *, actor: Actor) -> FreelancerBankAccount:
    """Operator confirms the account; it becomes the user's only primary verified account."""

    if not actor.is_privileged:
        raise Forbidden("Only operators may verify bank accounts.")
    account = db.get(FreelancerBankAccount, account_id)
    if account is None:
        raise NotFound("Bank account not found.", code="BANK_ACCOUNT_NOT_FOUND")
    _demote_others(db, account.user_id, account.id)
    account.is_primary = True
    account.is_verified = True
    account.verified_at = utcnow()
    log_audit(
        db,
        actor=actor.label,
        action="BANK_ACCOUNT_VERIFIED",
        entity="FreelancerBankAccount",
        entity_id=account.id,
        data={"user_id": account.user_id},
    )
    db.commit()
    db.refresh(account)
    logger.info("Bank account verified", extra={"account_id": account.id, "user_id": account.user_id})
    return account


__all__ = ["list_accounts", "get_primary_verified", "upsert_account", "verify_account"]
