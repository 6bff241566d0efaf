"""Escrow endpoints for clients, freelancers and operators."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.models import EscrowStatus
from app.schemas.dispute import DisputeRead
from app.schemas.escrow import EscrowActionPayload, EscrowDetail, EscrowEventRead, EscrowRead
from app.schemas.milestone import MilestoneRead
from app.security import require_actor
from app.services import escrow as escrow_service
from app.services import ledger
from app.services import milestones as milestones_service
from app.services.ledger import Actor

router = APIRouter(prefix="/escrows", tags=["escrow"])


def _detail(db: Session, escrow) -> EscrowDetail:
    base = EscrowRead.model_validate(escrow).model_dump()
    dispute = ledger.active_dispute(db, escrow)
    return EscrowDetail(
        **base,
        milestones=[MilestoneRead.model_validate(m) for m in escrow.milestones],
        active_dispute=DisputeRead.model_validate(dispute) if dispute else None,
        **escrow_service.escrow_summary(db, escrow),
    )


@router.get("", response_model=list[EscrowRead])
def list_escrows(
    status: EscrowStatus | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return ledger.list_escrows(db, actor=actor, status=status)


@router.get("/{escrow_id}", response_model=EscrowDetail)
def get_escrow(escrow_id: int, db: Session = Depends(get_db), actor: Actor = Depends(require_actor)):
    escrow = ledger.get_escrow(db, escrow_id, actor=actor)
    return _detail(db, escrow)


@router.get("/{escrow_id}/events", response_model=list[EscrowEventRead])
def list_events(escrow_id: int, db: Session = Depends(get_db), actor: Actor = Depends(require_actor)):
    escrow = ledger.get_escrow(db, escrow_id, actor=actor)
    return sorted(escrow.events, key=lambda event: event.id)


@router.get("/{escrow_id}/milestones", response_model=list[MilestoneRead])
def list_milestones(escrow_id: int, db: Session = Depends(get_db), actor: Actor = Depends(require_actor)):
    return milestones_service.list_milestones(db, escrow_id, actor=actor)


@router.post("/{escrow_id}/release", response_model=EscrowDetail)
def release(
    escrow_id: int,
    payload: EscrowActionPayload | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    escrow = escrow_service.release_escrow(db, escrow_id, actor=actor, note=payload.note if payload else None)
    return _detail(db, escrow)


@router.post("/{escrow_id}/refund", response_model=EscrowDetail)
def refund(
    escrow_id: int,
    payload: EscrowActionPayload | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    escrow = escrow_service.refund_escrow(db, escrow_id, actor=actor, reason=payload.note if payload else None)
    return _detail(db, escrow)
