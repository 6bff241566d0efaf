"""API key issuance and revocation."""
from __future__ import annotations

from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import ApiKey, User
from app.utils.apikey import gen_key
from app.utils.audit import log_audit
from app.utils.errors import Conflict, NotFound
from app.utils.time import utcnow


def issue_key(
    db: Session, *, name: str, user_id: int, days_valid: int | None = 90, actor: str = "system"
) -> tuple[ApiKey, str]:
    """Create a key for ``user_id``; the raw value is returned once and never stored."""

    if db.get(User, user_id) is None:
        raise NotFound("User not found.", code="USER_NOT_FOUND")
    raw, prefix, key_hash = gen_key()
    expires_at = utcnow() + timedelta(days=days_valid) if days_valid else None
    row = ApiKey(name=name.strip(), prefix=prefix, key_hash=key_hash, user_id=user_id, expires_at=expires_at)
    db.add(row)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Key name already exists.", code="APIKEY_EXISTS") from exc
    log_audit(
        db,
        actor=actor,
        action="CREATE_API_KEY",
        entity="ApiKey",
        entity_id=row.id,
        data={"name": row.name, "user_id": user_id, "prefix": prefix},
    )
    db.commit()
    db.refresh(row)
    return row, raw


def revoke_key(db: Session, api_key_id: int, *, actor: str = "system") -> ApiKey:
    row = db.get(ApiKey, api_key_id)
    if row is None:
        raise NotFound("API key not found.", code="APIKEY_NOT_FOUND")
    row.is_active = False
    log_audit(db, actor=actor, action="REVOKE_API_KEY", entity="ApiKey", entity_id=row.id, data={"name": row.name})
    db.commit()
    db.refresh(row)
    return row


__all__ = ["issue_key", "revoke_key"]
