"""Milestone coordinator.

Milestones run pending -> in_progress -> submitted -> approved -> paid, with a
revision back-edge submitted -> in_progress capped by ``max_revisions``. Only the
next unfinished milestone is ever in progress.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import (
    Escrow,
    EscrowStatus,
    Job,
    JobStatus,
    Milestone,
    MilestoneStatus,
    PayoutItem,
    PayoutKind,
    ReleaseSource,
)
from app.services import ledger
from app.services import notifications as notifications_service
from app.services.ledger import Actor, MilestoneDraft
from app.utils.audit import log_audit
from app.utils.errors import Forbidden, IllegalTransition, InvalidRequest, NotFound
from app.utils.money import HUNDRED, ZERO, percent_of, to_money
from app.utils.time import parse_iso_utc, utcnow

logger = logging.getLogger(__name__)

UNPAID_STATUSES = (
    MilestoneStatus.PENDING,
    MilestoneStatus.IN_PROGRESS,
    MilestoneStatus.SUBMITTED,
    MilestoneStatus.APPROVED,
)


def _split_amounts(net: Decimal, percentages: Sequence[Decimal]) -> list[Decimal]:
    """Share ``net`` by percentage; the last share absorbs rounding when they sum to 100."""

    amounts = [percent_of(net, pct) for pct in percentages]
    if amounts and sum(percentages, ZERO) == HUNDRED:
        amounts[-1] = to_money(net) - sum(amounts[:-1], ZERO)
    return amounts


def draft_plan(
    plan: Sequence[dict[str, Any]] | None, net: Decimal, *, max_revisions: int
) -> tuple[list[MilestoneDraft], bool]:
    """Turn a job's milestone plan into drafts; report whether the plan is flagged.

    No plan yields a single 100% milestone. A plan whose percentages do not sum to
    100 is kept as-is but flagged.
    """

    entries = list(plan or [])
    if not entries:
        entries = [{"description": "Complete project", "percentage": "100"}]

    percentages = [to_money(entry.get("percentage", 0)) for entry in entries]
    flagged = sum(percentages, ZERO) != HUNDRED
    amounts = _split_amounts(net, percentages)

    drafts = []
    for position, (entry, pct, amount) in enumerate(zip(entries, percentages, amounts), start=1):
        due = entry.get("due_date")
        drafts.append(
            MilestoneDraft(
                idx=position,
                description=str(entry.get("description") or f"Milestone {position}")[:500],
                percentage=pct,
                amount=amount,
                status=MilestoneStatus.IN_PROGRESS if position == 1 else MilestoneStatus.PENDING,
                max_revisions=max_revisions,
                due_date=parse_iso_utc(due) if isinstance(due, str) and due else None,
            )
        )
    if flagged:
        logger.warning("Milestone plan does not sum to 100", extra={"total": str(sum(percentages, ZERO))})
    return drafts, flagged


def get_milestone(db: Session, milestone_id: int, *, actor: Actor, for_update: bool = False) -> Milestone:
    stmt = select(Milestone).where(Milestone.id == milestone_id)
    if for_update:
        stmt = stmt.with_for_update()
    milestone = db.execute(stmt).scalar_one_or_none()
    if milestone is None:
        raise NotFound("Milestone not found.", code="MILESTONE_NOT_FOUND")
    ledger.ensure_can_read(milestone.escrow, actor)
    return milestone


def list_milestones(db: Session, escrow_id: int, *, actor: Actor) -> list[Milestone]:
    escrow = ledger.get_escrow(db, escrow_id, actor=actor)
    return list(escrow.milestones)


def _require_active_escrow(milestone: Milestone) -> None:
    escrow = milestone.escrow
    if escrow.status != EscrowStatus.HELD:
        raise IllegalTransition(
            "Milestones only move while the escrow is held.",
            details={"escrow_id": escrow.id, "escrow_status": escrow.status.value},
        )


def _require_side(milestone: Milestone, actor: Actor, side: str) -> None:
    escrow = milestone.escrow
    expected = escrow.freelancer_id if side == "freelancer" else escrow.client_id
    if actor.user_id != expected:
        raise Forbidden(f"Only the {side} may do this.", details={"milestone_id": milestone.id})


def _require_status(milestone: Milestone, *allowed: MilestoneStatus) -> None:
    if milestone.status not in allowed:
        raise IllegalTransition(
            f"Milestone is {milestone.status.value}.",
            details={"milestone_id": milestone.id, "allowed": [s.value for s in allowed]},
        )


def _audit(db: Session, actor: Actor, action: str, milestone: Milestone, **data: Any) -> None:
    log_audit(
        db,
        actor=actor.label,
        action=action,
        entity="Milestone",
        entity_id=milestone.id,
        data={"escrow_id": milestone.escrow_id, "status": milestone.status.value, **data},
    )


def submit_milestone(
    db: Session, milestone_id: int, *, actor: Actor, submission_ref: str, notes: str | None = None
) -> Milestone:
    """Freelancer hands in work; a re-submission after revision bumps the counter."""

    with ledger.unit_of_work(db):
        milestone = get_milestone(db, milestone_id, actor=actor, for_update=True)
        _require_side(milestone, actor, "freelancer")
        _require_active_escrow(milestone)
        _require_status(milestone, MilestoneStatus.IN_PROGRESS)

        if milestone.submitted_at is not None:
            milestone.revision_count += 1
        milestone.status = MilestoneStatus.SUBMITTED
        milestone.submission_ref = submission_ref
        milestone.submission_notes = notes
        milestone.submitted_at = utcnow()
        _audit(db, actor, "MILESTONE_SUBMITTED", milestone, revision_count=milestone.revision_count)
        notifications_service.notify(
            db,
            user_id=milestone.escrow.client_id,
            kind="milestone_submitted",
            title="Milestone Submitted",
            message=f"Milestone {milestone.idx} has been submitted for your review.",
            related_entity="milestone",
            related_id=milestone.id,
        )
    db.refresh(milestone)
    logger.info("Milestone submitted", extra={"milestone_id": milestone.id})
    return milestone


def request_revision(db: Session, milestone_id: int, *, actor: Actor, notes: str | None = None) -> Milestone:
    with ledger.unit_of_work(db):
        milestone = get_milestone(db, milestone_id, actor=actor, for_update=True)
        _require_side(milestone, actor, "client")
        _require_active_escrow(milestone)
        _require_status(milestone, MilestoneStatus.SUBMITTED)
        if milestone.revision_count >= milestone.max_revisions:
            raise IllegalTransition(
                "Revision limit reached.",
                details={"milestone_id": milestone.id, "max_revisions": milestone.max_revisions},
            )

        milestone.status = MilestoneStatus.IN_PROGRESS
        milestone.client_notes = notes
        _audit(db, actor, "MILESTONE_REVISION_REQUESTED", milestone)
        notifications_service.notify(
            db,
            user_id=milestone.escrow.freelancer_id,
            kind="revision_requested",
            title="Revision Requested",
            message=f"The client asked for changes to milestone {milestone.idx}.",
            related_entity="milestone",
            related_id=milestone.id,
        )
    db.refresh(milestone)
    return milestone


def _start_next(milestone: Milestone) -> Milestone | None:
    for candidate in milestone.escrow.milestones:
        if candidate.idx <= milestone.idx:
            continue
        if candidate.status == MilestoneStatus.PENDING:
            candidate.status = MilestoneStatus.IN_PROGRESS
            candidate.started_at = utcnow()
            return candidate
        if candidate.status in UNPAID_STATUSES:
            return None
    return None


def approve_milestone(db: Session, milestone_id: int, *, actor: Actor, notes: str | None = None) -> Milestone:
    """Client approval; irrevocable. The payout worker picks it up afterwards."""

    with ledger.unit_of_work(db):
        milestone = get_milestone(db, milestone_id, actor=actor, for_update=True)
        _require_side(milestone, actor, "client")
        _require_active_escrow(milestone)
        _require_status(milestone, MilestoneStatus.SUBMITTED)

        milestone.status = MilestoneStatus.APPROVED
        milestone.approved_at = utcnow()
        if notes:
            milestone.client_notes = notes
        started = _start_next(milestone)
        _audit(db, actor, "MILESTONE_APPROVED", milestone, next_started=started.idx if started else None)
        notifications_service.notify(
            db,
            user_id=milestone.escrow.freelancer_id,
            kind="milestone_approved",
            title="Milestone Approved",
            message=f"Milestone {milestone.idx} was approved; payment of R{milestone.amount} is scheduled.",
            related_entity="milestone",
            related_id=milestone.id,
        )
    db.refresh(milestone)
    logger.info("Milestone approved", extra={"milestone_id": milestone.id, "escrow_id": milestone.escrow_id})
    return milestone


def on_payout_completed(db: Session, item: PayoutItem) -> Milestone | None:
    """Mark the item's milestone paid and release the escrow after the last one.

    A payout that was in flight when a dispute froze the escrow still marks its
    milestone paid, but only a held escrow is released by it.
    """

    if item.kind != PayoutKind.MILESTONE or item.milestone_id is None:
        return None
    milestone = db.get(Milestone, item.milestone_id)
    escrow = milestone.escrow
    if milestone.status == MilestoneStatus.PAID:
        return milestone

    milestone.status = MilestoneStatus.PAID
    milestone.paid_at = utcnow()
    _audit(db, Actor.system(), "MILESTONE_PAID", milestone, item_id=item.id)
    db.flush()
    if escrow.status != EscrowStatus.HELD:
        logger.info(
            "Milestone paid while escrow not held",
            extra={"milestone_id": milestone.id, "escrow_status": escrow.status.value},
        )
        return milestone

    if all(m.status in (MilestoneStatus.PAID, MilestoneStatus.CANCELLED) for m in escrow.milestones):
        ledger.update_escrow_status(
            db, escrow, EscrowStatus.RELEASED, actor=Actor.system(), release_source=ReleaseSource.MILESTONES
        )
        job = db.get(Job, escrow.job_id)
        if job is not None:
            job.status = JobStatus.COMPLETED
        notifications_service.notify_many(
            db,
            [escrow.client_id, escrow.freelancer_id],
            kind="escrow_released",
            title="Escrow Released",
            message="All milestones are paid; the escrow is complete.",
            related_entity="escrow",
            related_id=escrow.id,
        )
    return milestone


def cancel_unpaid(db: Session, escrow: Escrow) -> list[Milestone]:
    cancelled = []
    for milestone in escrow.milestones:
        if milestone.status in UNPAID_STATUSES:
            milestone.status = MilestoneStatus.CANCELLED
            cancelled.append(milestone)
    db.flush()
    return cancelled


def correct_plan(db: Session, escrow_id: int, *, actor: Actor, percentages: Sequence[Decimal]) -> Escrow:
    """Operator replaces a flagged plan's percentages and recomputes unpaid amounts."""

    if not actor.is_privileged:
        raise Forbidden("Only operators may correct a milestone plan.")
    with ledger.unit_of_work(db):
        escrow = ledger.get_escrow(db, escrow_id, actor=actor, for_update=True)
        if escrow.status != EscrowStatus.HELD:
            raise IllegalTransition("Plans can only be corrected while the escrow is held.")
        milestones = list(escrow.milestones)
        if len(percentages) != len(milestones):
            raise InvalidRequest(
                "One percentage per milestone is required.",
                details={"expected": len(milestones), "received": len(percentages)},
            )
        new_pcts = [to_money(pct) for pct in percentages]
        for milestone, pct in zip(milestones, new_pcts):
            if pct < ZERO:
                raise InvalidRequest("Percentages must be non-negative.")
            if milestone.status == MilestoneStatus.PAID and pct != to_money(milestone.percentage):
                raise InvalidRequest(
                    "Paid milestones keep their percentage.", details={"milestone_id": milestone.id}
                )

        amounts = _split_amounts(escrow.net_amount, new_pcts)
        for milestone, pct, amount in zip(milestones, new_pcts, amounts):
            if milestone.status == MilestoneStatus.PAID:
                continue
            milestone.percentage = pct
            milestone.amount = amount
        escrow.plan_flagged = sum(new_pcts, ZERO) != HUNDRED
        ledger.add_event(
            db,
            escrow,
            "PLAN_CORRECTED",
            actor=actor,
            data={"percentages": [str(p) for p in new_pcts], "plan_flagged": escrow.plan_flagged},
        )
        log_audit(
            db,
            actor=actor.label,
            action="MILESTONE_PLAN_CORRECTED",
            entity="Escrow",
            entity_id=escrow.id,
            data={"percentages": [str(p) for p in new_pcts]},
        )
    db.refresh(escrow)
    return escrow


__all__ = [
    "draft_plan",
    "get_milestone",
    "list_milestones",
    "submit_milestone",
    "request_revision",
    "approve_milestone",
    "on_payout_completed",
    "cancel_unpaid",
    "correct_plan",
]
