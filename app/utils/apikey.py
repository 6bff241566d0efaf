"""API key generation and validation helpers."""
from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.api_key import ApiKey


def hash_key(raw: str) -> str:
    """Return an HMAC-SHA256 hash for the provided API key."""

    secret = get_settings().SECRET_KEY
    return hmac.new(secret.encode(), raw.encode(), hashlib.sha256).hexdigest()


def gen_key(prefix_len: int = 6) -> tuple[str, str, str]:
    """Generate a user-facing API key, its prefix, and the stored hash."""

    prefix = "tw_" + secrets.token_hex(prefix_len)[:prefix_len]
    suffix = secrets.token_urlsafe(32)
    raw = f"{prefix}.{suffix}"
    return raw, prefix, hash_key(raw)


def is_service_key(raw: str) -> bool:
    """Return True when ``raw`` matches the configured service credential."""

    service_key = get_settings().SERVICE_API_KEY
    return bool(service_key) and secrets.compare_digest(raw, service_key)


def find_valid_key(db: Session, raw: str) -> Optional[ApiKey]:
    """Return a matching active, unexpired API key."""

    key_hash = hash_key(raw)
    key = (
        db.query(ApiKey)
        .filter(ApiKey.key_hash == key_hash, ApiKey.is_active.is_(True))
        .first()
    )
    if key is None:
        return None
    expires_at = key.expires_at
    if expires_at is not None and expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=UTC)
    if expires_at is None or expires_at > datetime.now(UTC):
        return key
    return None


__all__ = ["hash_key", "gen_key", "is_service_key", "find_valid_key"]
