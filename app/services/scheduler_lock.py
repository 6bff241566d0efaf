"""DB-backed lease electing the one replica that runs the scheduled payout job."""
from __future__ import annotations

import os
import socket
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import db
from app.models.scheduler_lock import SchedulerLock
from app.utils.time import as_utc, utcnow

LOCK_NAME = "daily-payouts"
LOCK_TTL_SECONDS = 300


def _session(db_session: Session | None) -> tuple[Session, bool]:
    if db_session is not None:
        return db_session, False
    return db.get_sessionmaker()(), True


def _transaction(session: Session):
    return session.begin_nested() if session.in_transaction() else session.begin()


def owner_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


def _locked_row(session: Session, name: str) -> SchedulerLock | None:
    stmt = select(SchedulerLock).where(SchedulerLock.name == name).with_for_update()
    return session.execute(stmt).scalar_one_or_none()


def try_acquire_scheduler_lock(
    name: str = LOCK_NAME,
    *,
    ttl_seconds: int = LOCK_TTL_SECONDS,
    owner: str | None = None,
    db_session: Session | None = None,
) -> bool:
    """Take the lease if free, expired, or already ours; extend it in every case we win."""

    session, should_close = _session(db_session)
    owner = owner or owner_id()
    now = utcnow()
    expires = now + timedelta(seconds=ttl_seconds)
    try:
        with _transaction(session):
            lock = _locked_row(session, name)
            if lock is None:
                session.add(SchedulerLock(name=name, owner=owner, acquired_at=now, expires_at=expires))
                session.flush()
                return True
            expires_at = as_utc(lock.expires_at)
            if lock.owner != owner and expires_at is not None and expires_at > now:
                return False
            if lock.owner != owner:
                lock.acquired_at = now
            lock.owner = owner
            lock.expires_at = expires
            return True
    except IntegrityError:
        # Another replica inserted the row first.
        return False
    finally:
        if should_close:
            session.close()


def refresh_scheduler_lock(
    name: str = LOCK_NAME, *, ttl_seconds: int = LOCK_TTL_SECONDS, db_session: Session | None = None
) -> None:
    """Heartbeat: push the expiry forward while this process owns the lease."""

    session, should_close = _session(db_session)
    try:
        with _transaction(session):
            lock = _locked_row(session, name)
            if lock is not None and lock.owner == owner_id():
                lock.expires_at = utcnow() + timedelta(seconds=ttl_seconds)
    finally:
        if should_close:
            session.close()


def release_scheduler_lock(
    name: str = LOCK_NAME, *, owner: str | None = None, db_session: Session | None = None
) -> None:
    session, should_close = _session(db_session)
    owner = owner or owner_id()
    try:
        with _transaction(session):
            lock = _locked_row(session, name)
            if lock is not None and lock.owner == owner:
                session.delete(lock)
    finally:
        if should_close:
            session.close()


def describe_scheduler_lock(name: str = LOCK_NAME, *, db_session: Session | None = None) -> dict[str, object]:
    """Lease state for the health endpoint."""

    session, should_close = _session(db_session)
    try:
        lock = session.execute(select(SchedulerLock).where(SchedulerLock.name == name)).scalar_one_or_none()
        if lock is None:
            return {"present": False, "owner": None}
        expires_at = as_utc(lock.expires_at)
        return {
            "present": True,
            "owner": lock.owner,
            "owned_by_self": lock.owner == owner_id(),
            "expires_in_seconds": (expires_at - utcnow()).total_seconds() if expires_at else None,
        }
    finally:
        if should_close:
            session.close()


__all__ = [
    "LOCK_NAME",
    "owner_id",
    "try_acquire_scheduler_lock",
    "refresh_scheduler_lock",
    "release_scheduler_lock",
    "describe_scheduler_lock",
]
