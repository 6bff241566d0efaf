"""Escrow domain services: fee arithmetic and party-driven transitions."""
import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from app.models import (
    Escrow,
    EscrowStatus,
    Job,
    JobPaymentStatus,
    JobStatus,
    MilestoneStatus,
    PayoutItemStatus,
    PayoutKind,
    ReleaseSource,
)
from app.services import ledger
from app.services import milestones as milestones_service
from app.services import notifications as notifications_service
from app.services.ledger import Actor, ActorRole
from app.utils.errors import Forbidden, IllegalTransition
from app.utils.money import ZERO, percent_of, to_money

logger = logging.getLogger(__name__)

WORK_STARTED_STATUSES = (MilestoneStatus.SUBMITTED, MilestoneStatus.APPROVED, MilestoneStatus.PAID)


def split_fee(gross: Decimal, fee_percent: Decimal) -> tuple[Decimal, Decimal]:
    """Return ``(platform_fee, net)`` for a gross amount; fee rounds half-up to cents."""

    gross = to_money(gross)
    if gross < ZERO:
        raise ValueError("Gross amount cannot be negative")
    fee = percent_of(gross, fee_percent)
    return fee, gross - fee


def _require_client(escrow: Escrow, actor: Actor) -> None:
    if actor.role == ActorRole.OPERATOR:
        return
    if actor.user_id != escrow.client_id:
        raise Forbidden("Only the client may do this.", details={"escrow_id": escrow.id})


def _job(db: Session, escrow: Escrow) -> Job | None:
    return db.get(Job, escrow.job_id)


def release_escrow(db: Session, escrow_id: int, *, actor: Actor, note: str | None = None) -> Escrow:
    """Client releases the whole escrow: outstanding net becomes one payout item."""

    with ledger.unit_of_work(db):
        escrow = ledger.get_escrow(db, escrow_id, actor=actor, for_update=True)
        _require_client(escrow, actor)
        if escrow.status != EscrowStatus.HELD:
            raise IllegalTransition(
                f"Escrow is {escrow.status.value}; only held escrows can be released.",
                details={"escrow_id": escrow.id},
            )
        if ledger.items_for_escrow(db, escrow.id, [PayoutItemStatus.PROCESSING]):
            raise IllegalTransition(
                "A payout for this escrow is in flight; retry after it settles.",
                details={"escrow_id": escrow.id},
            )

        ledger.fail_unsent_items(db, escrow, reason="superseded by client release")
        milestones_service.cancel_unpaid(db, escrow)
        amount = ledger.outstanding(db, escrow)
        ledger.update_escrow_status(
            db, escrow, EscrowStatus.RELEASED, actor=actor, release_source=ReleaseSource.CLIENT, reason=note
        )
        if amount > ZERO:
            ledger.append_payout_item(db, escrow=escrow, milestone=None, amount=amount, kind=PayoutKind.RELEASE)
        job = _job(db, escrow)
        if job is not None:
            job.status = JobStatus.COMPLETED
        notifications_service.notify(
            db,
            user_id=escrow.freelancer_id,
            kind="payment_released",
            title="Payment Released",
            message=f"The client released R{amount} to you. It will be paid out in the next payout run.",
            related_entity="escrow",
            related_id=escrow.id,
        )
    db.refresh(escrow)
    logger.info("Escrow released by client", extra={"escrow_id": escrow.id, "amount": str(amount)})
    return escrow


def refund_escrow(db: Session, escrow_id: int, *, actor: Actor, reason: str | None = None) -> Escrow:
    """Client takes the money back before any work was handed in."""

    with ledger.unit_of_work(db):
        escrow = ledger.get_escrow(db, escrow_id, actor=actor, for_update=True)
        _require_client(escrow, actor)
        if escrow.status != EscrowStatus.HELD:
            raise IllegalTransition(
                f"Escrow is {escrow.status.value}; only held escrows can be refunded.",
                details={"escrow_id": escrow.id},
            )
        if any(m.status in WORK_STARTED_STATUSES for m in escrow.milestones):
            raise IllegalTransition(
                "Work has already been submitted; open a dispute instead.",
                details={"escrow_id": escrow.id},
            )
        if ledger.committed(db, escrow) > ZERO:
            raise IllegalTransition("Part of this escrow has already been paid out.", details={"escrow_id": escrow.id})

        ledger.fail_unsent_items(db, escrow, reason="superseded by refund")
        milestones_service.cancel_unpaid(db, escrow)
        ledger.update_escrow_status(db, escrow, EscrowStatus.REFUNDED, actor=actor, reason=reason)
        job = _job(db, escrow)
        if job is not None:
            job.status = JobStatus.CANCELLED
            job.payment_status = JobPaymentStatus.REFUNDED
        notifications_service.notify(
            db,
            user_id=escrow.freelancer_id,
            kind="escrow_refunded",
            title="Escrow Refunded",
            message="The client cancelled the job before work started; the escrow was refunded.",
            related_entity="escrow",
            related_id=escrow.id,
        )
    db.refresh(escrow)
    logger.info("Escrow refunded", extra={"escrow_id": escrow.id})
    return escrow


def cancel_pending_escrow(db: Session, escrow: Escrow, *, reason: str) -> Escrow:
    """Provider reported failure for an escrow still waiting for funds."""

    ledger.update_escrow_status(db, escrow, EscrowStatus.CANCELLED, actor=Actor.system(), reason=reason)
    milestones_service.cancel_unpaid(db, escrow)
    return escrow


def escrow_summary(db: Session, escrow: Escrow) -> dict:
    return {
        "paid_out": ledger.paid_out(db, escrow),
        "outstanding": ledger.outstanding(db, escrow)
        if escrow.status not in (EscrowStatus.REFUNDED, EscrowStatus.CANCELLED)
        else ZERO,
    }


__all__ = ["split_fee", "release_escrow", "refund_escrow", "cancel_pending_escrow", "escrow_summary"]
