"""Out-of-band entry point for the daily payout worker.

Exits non-zero when any payout item in the batch failed so the scheduler
(cron, Kubernetes CronJob, ...) reports the run.
"""
from __future__ import annotations

import asyncio
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from app import db  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.core.logging import setup_logging  # noqa: E402
from app.services.payouts import run_daily_payouts  # noqa: E402

logger = logging.getLogger("scripts.process_daily_payouts")


async def _run() -> int:
    settings = get_settings()
    session = db.get_sessionmaker()()
    try:
        result = await run_daily_payouts(session, settings=settings)
    finally:
        session.close()
        db.close_engine()
    logger.info(
        "Payout worker exiting",
        extra={"batch": result.reference, "status": result.status, "exit_code": result.exit_code},
    )
    return result.exit_code


def main() -> int:
    setup_logging(get_settings().LOG_LEVEL)
    return asyncio.run(_run())


if __name__ == "__main__":
    sys.exit(main())
