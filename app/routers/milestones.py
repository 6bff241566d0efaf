"""Milestone workflow endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.milestone import MilestoneDecision, MilestoneRead, MilestoneSubmit
from app.security import require_actor
from app.services import milestones as milestones_service
from app.services.ledger import Actor

router = APIRouter(prefix="/milestones", tags=["milestones"])


@router.get("/{milestone_id}", response_model=MilestoneRead)
def get_milestone(milestone_id: int, db: Session = Depends(get_db), actor: Actor = Depends(require_actor)):
    return milestones_service.get_milestone(db, milestone_id, actor=actor)


@router.post("/{milestone_id}/submit", response_model=MilestoneRead)
def submit(
    milestone_id: int,
    payload: MilestoneSubmit,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return milestones_service.submit_milestone(
        db, milestone_id, actor=actor, submission_ref=payload.submission_ref, notes=payload.notes
    )


@router.post("/{milestone_id}/request-revision", response_model=MilestoneRead)
def request_revision(
    milestone_id: int,
    payload: MilestoneDecision,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return milestones_service.request_revision(db, milestone_id, actor=actor, notes=payload.notes)


@router.post("/{milestone_id}/approve", response_model=MilestoneRead)
def approve(
    milestone_id: int,
    payload: MilestoneDecision | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return milestones_service.approve_milestone(db, milestone_id, actor=actor, notes=payload.notes if payload else None)
