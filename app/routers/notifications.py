"""Notification inbox endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.notification import NotificationRead
from app.security import require_user
from app.services import notifications as notifications_service
from app.services.ledger import Actor

router = APIRouter(prefix="/me/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationRead])
def list_notifications(
    unread_only: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_user),
):
    return notifications_service.list_notifications(db, actor.user_id, unread_only=unread_only)


@router.post("/{notification_id}/read", response_model=NotificationRead)
def mark_read(notification_id: int, db: Session = Depends(get_db), actor: Actor = Depends(require_user)):
    return notifications_service.mark_read(db, notification_id, actor.user_id)


@router.post("/read-all")
def mark_all_read(db: Session = Depends(get_db), actor: Actor = Depends(require_user)) -> dict[str, int]:
    return {"updated": notifications_service.mark_all_read(db, actor.user_id)}
