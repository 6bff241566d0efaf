"""Health check endpoint."""
from __future__ import annotations

import hashlib
import logging

from alembic.config import Config
from alembic.script import ScriptDirectory
from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import Settings, get_settings
from app.core.runtime_state import is_scheduler_active
from app.db import get_engine
from app.services.scheduler_lock import describe_scheduler_lock

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger(__name__)


def _fingerprint(value: str | None) -> str | None:
    if not value:
        return None
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:8]


def _db_status() -> str:
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return "ok"
    except SQLAlchemyError:
        logger.exception("DB health check failed")
        return "error"


def _expected_migration_head() -> str | None:
    try:
        script = ScriptDirectory.from_config(Config("alembic.ini"))
        return script.get_current_head()
    except Exception:  # noqa: BLE001
        logger.exception("Failed to load Alembic head revision")
        return None


def _migrations_status() -> tuple[bool, str]:
    expected_head = _expected_migration_head()
    try:
        with get_engine().connect() as conn:
            current = conn.execute(text("SELECT version_num FROM alembic_version")).scalar()
    except SQLAlchemyError:
        return False, "unknown"
    if expected_head is None:
        return False, "unknown"
    if current == expected_head:
        return True, "up_to_date"
    return False, "out_of_date"


def _payfast_status(settings: Settings) -> dict[str, object]:
    return {
        "mode": "production" if settings.is_production else "sandbox",
        "base_url": settings.payfast_base_url,
        "merchant_configured": bool(settings.PAYFAST_MERCHANT_ID and settings.PAYFAST_MERCHANT_KEY),
        "passphrase_configured": settings.PAYFAST_PASSPHRASE is not None,
        "fingerprints": {
            "merchant_key": _fingerprint(settings.PAYFAST_MERCHANT_KEY),
            "passphrase": _fingerprint(settings.PAYFAST_PASSPHRASE),
        },
    }


@router.get("", summary="Health check")
def healthcheck() -> dict[str, object]:
    settings = get_settings()
    db_status = _db_status()
    db_ok = db_status == "ok"
    if db_ok:
        migrations_ok, migrations_status = _migrations_status()
        scheduler_lock = describe_scheduler_lock()
    else:
        migrations_ok, migrations_status = False, "unknown"
        scheduler_lock = None
    return {
        "status": "ok" if db_ok else "degraded",
        "db_ok": db_ok,
        "db_status": db_status,
        "migrations_ok": migrations_ok,
        "migrations_status": migrations_status,
        "payfast": _payfast_status(settings),
        "scheduler_config_enabled": settings.SCHEDULER_ENABLED,
        "scheduler_running": is_scheduler_active(),
        "scheduler_lock": scheduler_lock,
    }
