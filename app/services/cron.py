"""Scheduled jobs run by the in-process APScheduler."""
from __future__ import annotations

import logging

from app import db
from app.config import get_settings
from app.services.payouts import run_daily_payouts

logger = logging.getLogger(__name__)


async def run_payouts_job() -> int:
    """Daily payout run on the replica holding the scheduler lease."""

    settings = get_settings()
    session = db.get_sessionmaker()()
    try:
        result = await run_daily_payouts(session, settings=settings)
    finally:
        session.close()
    if result.exit_code:
        logger.error(
            "Scheduled payout run finished with failures",
            extra={"batch": result.reference, "failed": result.failed},
        )
    return result.exit_code
