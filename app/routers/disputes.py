"""Dispute endpoints. Parties open and add evidence; operators adjudicate."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.db import get_db
from app.models import DisputeStatus
from app.schemas.dispute import DisputeCreate, DisputeEvidence, DisputeNote, DisputeRead, DisputeResolve
from app.security import require_actor, require_operator
from app.services import disputes as disputes_service
from app.services.ledger import Actor

router = APIRouter(prefix="/disputes", tags=["disputes"])


@router.post("", response_model=DisputeRead, status_code=status.HTTP_201_CREATED)
def open_dispute(
    payload: DisputeCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
    settings: Settings = Depends(get_settings),
):
    return disputes_service.open_dispute(
        db,
        payload.escrow_id,
        actor=actor,
        reason=payload.reason,
        title=payload.title,
        description=payload.description,
        evidence=payload.evidence,
        settings=settings,
    )


@router.get("", response_model=list[DisputeRead])
def list_disputes(
    status: DisputeStatus | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return disputes_service.list_disputes(db, actor=actor, status=status)


@router.get("/{dispute_id}", response_model=DisputeRead)
def get_dispute(dispute_id: int, db: Session = Depends(get_db), actor: Actor = Depends(require_actor)):
    return disputes_service.get_dispute(db, dispute_id, actor=actor)


@router.post("/{dispute_id}/evidence", response_model=DisputeRead)
def add_evidence(
    dispute_id: int,
    payload: DisputeEvidence,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return disputes_service.add_evidence(db, dispute_id, actor=actor, evidence=payload.evidence)


@router.post("/{dispute_id}/review", response_model=DisputeRead)
def start_review(dispute_id: int, db: Session = Depends(get_db), actor: Actor = Depends(require_operator)):
    return disputes_service.start_review(db, dispute_id, actor=actor)


@router.post("/{dispute_id}/escalate", response_model=DisputeRead)
def escalate(
    dispute_id: int,
    payload: DisputeNote | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_operator),
):
    return disputes_service.escalate(db, dispute_id, actor=actor, note=payload.note if payload else None)


@router.post("/{dispute_id}/cancel", response_model=DisputeRead)
def cancel(
    dispute_id: int,
    payload: DisputeNote | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return disputes_service.cancel_dispute(db, dispute_id, actor=actor, note=payload.note if payload else None)


@router.post("/{dispute_id}/resolve", response_model=DisputeRead)
def resolve(
    dispute_id: int,
    payload: DisputeResolve,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_operator),
):
    return disputes_service.resolve_dispute(
        db,
        dispute_id,
        actor=actor,
        decision=payload.decision,
        payment_adjustment=payload.payment_adjustment,
        summary=payload.summary,
    )
