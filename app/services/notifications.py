"""Outbound notification interface: rows in the notifications table.

Delivery (email, push, realtime) is owned by other systems; they read this table.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models import Notification, User
from app.utils.errors import NotFound

logger = logging.getLogger(__name__)


def notify(
    db: Session,
    *,
    user_id: int,
    kind: str,
    title: str,
    message: str,
    related_entity: str | None = None,
    related_id: int | str | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        kind=kind,
        title=title,
        message=message,
        related_entity=related_entity,
        related_id=str(related_id) if related_id is not None else None,
    )
    db.add(notification)
    logger.info("Notification queued", extra={"user_id": user_id, "kind": kind})
    return notification


def notify_many(db: Session, user_ids: Iterable[int], **kwargs) -> list[Notification]:
    return [notify(db, user_id=user_id, **kwargs) for user_id in dict.fromkeys(user_ids)]


def operator_ids(db: Session) -> list[int]:
    stmt = select(User.id).where(User.is_operator.is_(True), User.is_active.is_(True))
    return list(db.scalars(stmt))


def notify_operators(db: Session, **kwargs) -> list[Notification]:
    return notify_many(db, operator_ids(db), **kwargs)


def list_notifications(db: Session, user_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.id.desc())
        .limit(limit)
    )
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    return list(db.scalars(stmt))


def mark_read(db: Session, notification_id: int, user_id: int) -> Notification:
    notification = db.get(Notification, notification_id)
    # Someone else's notification is reported as missing.
    if notification is None or notification.user_id != user_id:
        raise NotFound("Notification not found.", code="NOTIFICATION_NOT_FOUND")
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: int) -> int:
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    db.commit()
    return result.rowcount or 0


__all__ = [
    "notify",
    "notify_many",
    "notify_operators",
    "operator_ids",
    "list_notifications",
    "mark_read",
    "mark_all_read",
]
