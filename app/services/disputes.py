"""Dispute workflow.

Opening a dispute freezes the escrow (status ``disputed``): no milestone moves and
no payout is emitted until an operator cancels or resolves it. Resolution applies
the decision and the adjustment in the same unit of work.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.models import (
    Dispute,
    DisputeReason,
    DisputeStatus,
    Escrow,
    EscrowStatus,
    Job,
    JobPaymentStatus,
    JobStatus,
    PayoutKind,
    ReleaseSource,
    ResolutionDecision,
)
from app.models.dispute import OPEN_DISPUTE_STATUSES
from app.services import ledger
from app.services import milestones as milestones_service
from app.services import notifications as notifications_service
from app.services.ledger import Actor, ActorRole
from app.utils.audit import log_audit
from app.utils.errors import Forbidden, IllegalTransition, InvalidRequest, NotFound
from app.utils.money import ZERO, to_money
from app.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)

RELEASING_DECISIONS = (
    ResolutionDecision.FAVOR_FREELANCER,
    ResolutionDecision.SPLIT,
    ResolutionDecision.NO_FAULT,
    ResolutionDecision.MUTUAL,
)


def _require_operator(actor: Actor) -> None:
    if actor.role != ActorRole.OPERATOR:
        raise Forbidden("Only operators may do this.")


def _within_grace_window(escrow: Escrow, settings: Settings) -> bool:
    hours = settings.DISPUTE_GRACE_PERIOD_HOURS
    released_at = as_utc(escrow.released_at)
    if hours is None or released_at is None:
        return False
    return utcnow() <= released_at + timedelta(hours=hours)


def get_dispute(db: Session, dispute_id: int, *, actor: Actor, for_update: bool = False) -> Dispute:
    stmt = select(Dispute).where(Dispute.id == dispute_id)
    if for_update:
        stmt = stmt.with_for_update()
    dispute = db.execute(stmt).scalar_one_or_none()
    if dispute is None:
        raise NotFound("Dispute not found.", code="DISPUTE_NOT_FOUND")
    if not actor.is_privileged and actor.user_id not in (dispute.raised_by_id, dispute.counter_party_id):
        raise Forbidden("Not a party to this dispute.", details={"dispute_id": dispute.id})
    return dispute


def list_disputes(db: Session, *, actor: Actor, status: DisputeStatus | None = None) -> list[Dispute]:
    stmt = select(Dispute).order_by(Dispute.id.desc())
    if not actor.is_privileged:
        stmt = stmt.where((Dispute.raised_by_id == actor.user_id) | (Dispute.counter_party_id == actor.user_id))
    if status is not None:
        stmt = stmt.where(Dispute.status == status)
    return list(db.scalars(stmt))


def _audit(db: Session, actor: Actor, action: str, dispute: Dispute, **data) -> None:
    log_audit(
        db,
        actor=actor.label,
        action=action,
        entity="Dispute",
        entity_id=dispute.id,
        data={"escrow_id": dispute.escrow_id, "status": dispute.status.value, **data},
    )


def open_dispute(
    db: Session,
    escrow_id: int,
    *,
    actor: Actor,
    reason: DisputeReason,
    title: str,
    description: str,
    evidence: list[str] | None = None,
    settings: Settings | None = None,
) -> Dispute:
    """Open a dispute; idempotent per (escrow, opener) while the dispute is open."""

    settings = settings or get_settings()
    with ledger.unit_of_work(db):
        escrow = ledger.get_escrow(db, escrow_id, actor=actor, for_update=True)
        if not ledger.is_party(escrow, actor):
            raise Forbidden("Only the client or the freelancer may open a dispute.")

        existing = db.execute(
            select(Dispute).where(
                Dispute.escrow_id == escrow.id,
                Dispute.raised_by_id == actor.user_id,
                Dispute.status.in_(OPEN_DISPUTE_STATUSES),
            )
        ).scalar_one_or_none()
        if existing is not None:
            logger.info("Dispute open reused", extra={"dispute_id": existing.id, "escrow_id": escrow.id})
            return existing

        can_open = escrow.status == EscrowStatus.HELD or (
            escrow.status == EscrowStatus.RELEASED and _within_grace_window(escrow, settings)
        )
        if not can_open:
            raise IllegalTransition(
                "A dispute can only be opened while funds are held or shortly after release.",
                details={"escrow_id": escrow.id, "status": escrow.status.value},
            )

        counter_party = escrow.freelancer_id if actor.user_id == escrow.client_id else escrow.client_id
        dispute = Dispute(
            escrow_id=escrow.id,
            job_id=escrow.job_id,
            raised_by_id=actor.user_id,
            counter_party_id=counter_party,
            reason=reason,
            title=title,
            description=description,
            evidence=list(evidence or []),
            status=DisputeStatus.PENDING,
            escrow_status_before=escrow.status,
            response_deadline=utcnow() + timedelta(days=settings.DISPUTE_RESPONSE_DAYS),
        )
        db.add(dispute)
        db.flush()

        ledger.update_escrow_status(db, escrow, EscrowStatus.DISPUTED, actor=actor, reason=reason.value)
        # Unsent payouts are re-derived once the dispute ends.
        ledger.fail_unsent_items(db, escrow, reason="superseded by dispute")
        escrow.active_dispute_id = dispute.id
        job = db.get(Job, escrow.job_id)
        if job is not None:
            job.payment_status = JobPaymentStatus.DISPUTED
        _audit(db, actor, "DISPUTE_OPENED", dispute, reason=reason.value)

        notifications_service.notify(
            db,
            user_id=counter_party,
            kind="dispute_opened",
            title="Dispute Opened",
            message=f"A dispute was opened on your job: {title}. Please respond within "
            f"{settings.DISPUTE_RESPONSE_DAYS} days.",
            related_entity="dispute",
            related_id=dispute.id,
        )
        notifications_service.notify(
            db,
            user_id=actor.user_id,
            kind="dispute_opened",
            title="Dispute Submitted",
            message="Your dispute was submitted. An operator will review it.",
            related_entity="dispute",
            related_id=dispute.id,
        )
        notifications_service.notify_operators(
            db,
            kind="dispute_opened",
            title="New Dispute",
            message=f"Dispute #{dispute.id} on escrow #{escrow.id} needs review.",
            related_entity="dispute",
            related_id=dispute.id,
        )
    db.refresh(dispute)
    logger.info("Dispute opened", extra={"dispute_id": dispute.id, "escrow_id": escrow_id})
    return dispute


def add_evidence(db: Session, dispute_id: int, *, actor: Actor, evidence: list[str]) -> Dispute:
    with ledger.unit_of_work(db):
        dispute = get_dispute(db, dispute_id, actor=actor, for_update=True)
        if dispute.status not in OPEN_DISPUTE_STATUSES:
            raise IllegalTransition(f"Dispute is {dispute.status.value}.", details={"dispute_id": dispute.id})
        # Reassign so the JSON column is marked dirty.
        dispute.evidence = [*dispute.evidence, *evidence]
        _audit(db, actor, "DISPUTE_EVIDENCE_ADDED", dispute, count=len(evidence))
    db.refresh(dispute)
    return dispute


def start_review(db: Session, dispute_id: int, *, actor: Actor) -> Dispute:
    _require_operator(actor)
    with ledger.unit_of_work(db):
        dispute = get_dispute(db, dispute_id, actor=actor, for_update=True)
        if dispute.status != DisputeStatus.PENDING:
            raise IllegalTransition(f"Dispute is {dispute.status.value}.", details={"dispute_id": dispute.id})
        dispute.status = DisputeStatus.IN_REVIEW
        dispute.reviewed_at = utcnow()
        _audit(db, actor, "DISPUTE_IN_REVIEW", dispute)
        notifications_service.notify_many(
            db,
            [dispute.raised_by_id, dispute.counter_party_id],
            kind="dispute_in_review",
            title="Dispute Under Review",
            message=f"An operator is reviewing dispute #{dispute.id}.",
            related_entity="dispute",
            related_id=dispute.id,
        )
    db.refresh(dispute)
    return dispute


def escalate(db: Session, dispute_id: int, *, actor: Actor, note: str | None = None) -> Dispute:
    _require_operator(actor)
    with ledger.unit_of_work(db):
        dispute = get_dispute(db, dispute_id, actor=actor, for_update=True)
        if dispute.status not in (DisputeStatus.PENDING, DisputeStatus.IN_REVIEW):
            raise IllegalTransition(f"Dispute is {dispute.status.value}.", details={"dispute_id": dispute.id})
        dispute.status = DisputeStatus.ESCALATED
        dispute.escalated_at = utcnow()
        _audit(db, actor, "DISPUTE_ESCALATED", dispute, note=note)
    db.refresh(dispute)
    return dispute


def cancel_dispute(db: Session, dispute_id: int, *, actor: Actor, note: str | None = None) -> Dispute:
    """Withdraw a dispute; the escrow goes back to where it was before."""

    with ledger.unit_of_work(db):
        dispute = get_dispute(db, dispute_id, actor=actor, for_update=True)
        if actor.role != ActorRole.OPERATOR and actor.user_id != dispute.raised_by_id:
            raise Forbidden("Only the opener or an operator may cancel a dispute.")
        if dispute.status not in OPEN_DISPUTE_STATUSES:
            raise IllegalTransition(f"Dispute is {dispute.status.value}.", details={"dispute_id": dispute.id})

        escrow = ledger.get_escrow(db, dispute.escrow_id, actor=Actor.system(), for_update=True)
        restore = dispute.escrow_status_before
        if restore == EscrowStatus.RELEASED:
            # Keep the original release timestamp and source.
            _restore_released(db, escrow, actor)
        else:
            ledger.update_escrow_status(db, escrow, restore, actor=actor, reason="dispute cancelled")
        escrow.active_dispute_id = None
        dispute.status = DisputeStatus.CANCELLED
        dispute.resolution_summary = note
        job = db.get(Job, escrow.job_id)
        if job is not None:
            job.payment_status = JobPaymentStatus.PAID
        _audit(db, actor, "DISPUTE_CANCELLED", dispute, restored=restore.value)
        notifications_service.notify_many(
            db,
            [dispute.raised_by_id, dispute.counter_party_id],
            kind="dispute_cancelled",
            title="Dispute Cancelled",
            message=f"Dispute #{dispute.id} was cancelled.",
            related_entity="dispute",
            related_id=dispute.id,
        )
    db.refresh(dispute)
    return dispute


def _restore_released(db: Session, escrow: Escrow, actor: Actor) -> None:
    released_at, source = escrow.released_at, escrow.release_source
    ledger.update_escrow_status(
        db,
        escrow,
        EscrowStatus.RELEASED,
        actor=actor,
        release_source=source or ReleaseSource.CLIENT,
        reason="dispute cancelled",
    )
    escrow.released_at = released_at


def _freelancer_share(
    decision: ResolutionDecision, adjustment: Decimal | None, outstanding: Decimal
) -> Decimal:
    if decision == ResolutionDecision.FAVOR_CLIENT:
        return ZERO
    if decision == ResolutionDecision.SPLIT:
        if adjustment is None:
            raise InvalidRequest("A split needs a payment adjustment.")
        return adjustment
    if adjustment is not None:
        return adjustment
    if decision == ResolutionDecision.FAVOR_FREELANCER:
        return outstanding
    # no_fault / mutual without an explicit amount share the remainder evenly.
    return to_money(outstanding / 2)


def resolve_dispute(
    db: Session,
    dispute_id: int,
    *,
    actor: Actor,
    decision: ResolutionDecision,
    payment_adjustment: Decimal | None,
    summary: str,
) -> Dispute:
    """Record an operator decision and move the escrow accordingly.

    ``payment_adjustment`` is the amount paid to the freelancer out of what is
    still outstanding. ``favor_client`` always refunds everything outstanding.
    """

    _require_operator(actor)
    with ledger.unit_of_work(db):
        dispute = get_dispute(db, dispute_id, actor=actor, for_update=True)
        if dispute.status not in OPEN_DISPUTE_STATUSES:
            raise IllegalTransition(f"Dispute is {dispute.status.value}.", details={"dispute_id": dispute.id})
        escrow = ledger.get_escrow(db, dispute.escrow_id, actor=actor, for_update=True)
        if escrow.status != EscrowStatus.DISPUTED:
            raise IllegalTransition("Escrow is not frozen by this dispute.", details={"escrow_id": escrow.id})

        ledger.fail_unsent_items(db, escrow, reason="superseded by dispute resolution")
        outstanding = ledger.outstanding(db, escrow)
        adjustment = to_money(payment_adjustment) if payment_adjustment is not None else None
        if adjustment is not None and (adjustment < ZERO or adjustment > outstanding):
            raise InvalidRequest(
                "Adjustment must be between zero and the outstanding amount.",
                details={"outstanding": str(outstanding), "adjustment": str(adjustment)},
            )
        if decision == ResolutionDecision.FAVOR_CLIENT and adjustment is not None and adjustment != outstanding:
            raise InvalidRequest(
                "favor_client refunds the whole outstanding amount; use split to share it.",
                details={"outstanding": str(outstanding), "adjustment": str(adjustment)},
            )

        payout = _freelancer_share(decision, adjustment, outstanding)
        refund = outstanding - payout

        milestones_service.cancel_unpaid(db, escrow)
        job = db.get(Job, escrow.job_id)
        if decision in RELEASING_DECISIONS:
            ledger.update_escrow_status(
                db,
                escrow,
                EscrowStatus.RELEASED,
                actor=actor,
                release_source=ReleaseSource.DISPUTE,
                reason=decision.value,
            )
            if payout > ZERO:
                ledger.append_payout_item(
                    db, escrow=escrow, milestone=None, amount=payout, kind=PayoutKind.DISPUTE, dispute_id=dispute.id
                )
            if job is not None:
                job.status = JobStatus.COMPLETED
                job.payment_status = JobPaymentStatus.PAID
        else:
            ledger.update_escrow_status(db, escrow, EscrowStatus.REFUNDED, actor=actor, reason=decision.value)
            if job is not None:
                job.status = JobStatus.CANCELLED
                job.payment_status = JobPaymentStatus.REFUNDED

        escrow.active_dispute_id = None
        dispute.status = DisputeStatus.RESOLVED
        dispute.resolution_decision = decision
        dispute.payment_adjustment = payout
        dispute.client_refund_amount = refund
        dispute.resolution_summary = summary
        dispute.resolved_by_id = actor.user_id
        dispute.resolved_at = utcnow()
        _audit(
            db,
            actor,
            "DISPUTE_RESOLVED",
            dispute,
            decision=decision.value,
            freelancer_payout=str(payout),
            client_refund=str(refund),
        )
        notifications_service.notify(
            db,
            user_id=escrow.freelancer_id,
            kind="dispute_resolved",
            title="Dispute Resolved",
            message=f"Dispute #{dispute.id} was resolved ({decision.value}). You will receive R{payout}.",
            related_entity="dispute",
            related_id=dispute.id,
        )
        notifications_service.notify(
            db,
            user_id=escrow.client_id,
            kind="dispute_resolved",
            title="Dispute Resolved",
            message=f"Dispute #{dispute.id} was resolved ({decision.value}). R{refund} is returned to you.",
            related_entity="dispute",
            related_id=dispute.id,
        )
    db.refresh(dispute)
    logger.info(
        "Dispute resolved",
        extra={"dispute_id": dispute.id, "decision": decision.value, "payout": str(payout)},
    )
    return dispute


__all__ = [
    "get_dispute",
    "list_disputes",
    "open_dispute",
    "add_evidence",
    "start_review",
    "escalate",
    "cancel_dispute",
    "resolve_dispute",
]
