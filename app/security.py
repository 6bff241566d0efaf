"""Authentication dependencies resolving the calling :class:`Actor`."""
from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.api_key import ApiKey
from app.services.ledger import Actor, ActorRole
from app.utils.apikey import find_valid_key, is_service_key
from app.utils.audit import log_audit
from app.utils.errors import error_response
from app.utils.time import utcnow


def _extract_key(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> str | None:
    """Read the key from ``Authorization: Bearer ...`` or ``X-API-Key``."""

    if x_api_key:
        return x_api_key.strip()
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip()
    return None


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=error_response(code, message))


def require_api_key(
    db: Session = Depends(get_db),
    token: str | None = Depends(_extract_key),
) -> ApiKey | None:
    """Validate the token. Returns ``None`` for the service credential."""

    if not token:
        raise _unauthorized("NO_API_KEY", "API key required.")
    if is_service_key(token):
        return None

    key = find_valid_key(db, token)
    if key is None or key.user is None or not key.user.is_active:
        raise _unauthorized("UNAUTHORIZED", "Invalid or expired API key")

    key.last_used_at = utcnow()
    log_audit(
        db,
        actor=f"apikey:{key.id}",
        action="API_KEY_USED",
        entity="ApiKey",
        entity_id=key.id,
        data={"prefix": key.prefix},
    )
    db.commit()
    return key


def require_actor(key: ApiKey | None = Depends(require_api_key)) -> Actor:
    if key is None:
        return Actor.system()
    role = ActorRole.OPERATOR if key.user.is_operator else ActorRole.USER
    return Actor(role=role, user_id=key.user_id)


def require_operator(actor: Actor = Depends(require_actor)) -> Actor:
    """Operators and the service credential only."""

    if not actor.is_privileged:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=error_response("OPERATOR_ONLY", "This operation is reserved for operators."),
        )
    return actor


def require_user(actor: Actor = Depends(require_actor)) -> Actor:
    """A caller bound to a user row (not the service credential)."""

    if actor.user_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=error_response("USER_REQUIRED", "This operation needs a user API key."),
        )
    return actor


__all__ = ["require_api_key", "require_actor", "require_operator", "require_user"]
