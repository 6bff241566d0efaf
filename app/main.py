from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app import db
from app.config import AppInfo, get_settings
from app.core.logging import get_logger, setup_logging
from app.core.runtime_state import set_scheduler_active
import app.models  # noqa: F401  registers the tables
from app.routers import get_api_router
from app.services.cron import run_payouts_job
from app.services.scheduler_lock import (
    refresh_scheduler_lock,
    release_scheduler_lock,
    try_acquire_scheduler_lock,
)
from app.utils.errors import error_response

logger = get_logger(__name__)
scheduler: AsyncIOScheduler | None = None
ALLOWED_CREATE_ENV = {"dev", "local", "test"}


def _configure_middlewares(fastapi_app: FastAPI) -> None:
    settings = get_settings()
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-API-Key"],
    )

    if settings.PROMETHEUS_ENABLED:
        from starlette_exporter import PrometheusMiddleware, handle_metrics

        fastapi_app.add_middleware(PrometheusMiddleware)
        fastapi_app.add_route("/metrics", handle_metrics)

    if settings.SENTRY_DSN:
        import sentry_sdk

        sentry_sdk.init(dsn=settings.SENTRY_DSN, traces_sample_rate=0.2)


def _warn_on_payfast_config(settings: Any) -> None:
    if not settings.is_production:
        logger.info("PayFast sandbox mode: payouts are simulated", extra={"env": settings.app_env})
        return
    if not (settings.PAYFAST_MERCHANT_ID and settings.PAYFAST_MERCHANT_KEY):
        logger.error("PayFast production mode without merchant credentials", extra={"env": settings.app_env})
        raise RuntimeError("PAYFAST_MERCHANT_ID and PAYFAST_MERCHANT_KEY are required in production mode.")
    if settings.PAYFAST_PASSPHRASE is None:
        logger.warning("PayFast passphrase is not configured", extra={"env": settings.app_env})


@asynccontextmanager
async def lifespan(app: FastAPI):
    global scheduler
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    logger.info("Application startup", extra={"env": settings.app_env})
    _warn_on_payfast_config(settings)

    db.init_engine()
    if settings.ALLOW_DB_CREATE_ALL and settings.app_env.lower() in ALLOWED_CREATE_ENV:
        logger.warning(
            "Running Base.metadata.create_all() because APP_ENV=%s and ALLOW_DB_CREATE_ALL=True",
            settings.app_env,
        )
        db.create_all()
    else:
        logger.info("Skipping create_all(); use Alembic migrations. APP_ENV=%s", settings.app_env)

    # Only the replica holding the DB lease runs the daily payout job.
    set_scheduler_active(False)
    lock_acquired = False
    if settings.SCHEDULER_ENABLED:
        lock_acquired = try_acquire_scheduler_lock()
        if lock_acquired:
            scheduler = AsyncIOScheduler(timezone="UTC")
            scheduler.add_job(
                run_payouts_job,
                CronTrigger.from_crontab(settings.SCHEDULER_CRON, timezone="UTC"),
                id="daily-payouts",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            scheduler.add_job(
                refresh_scheduler_lock,
                "interval",
                seconds=60,
                id="scheduler-lock-heartbeat",
                replace_existing=True,
            )
            scheduler.start()
            set_scheduler_active(True)
            logger.info("Payout scheduler started", extra={"cron": settings.SCHEDULER_CRON})
        else:
            logger.warning("Scheduler disabled because the lock is held by another instance.")
    try:
        yield
    finally:
        if scheduler:
            scheduler.shutdown(wait=False)
            scheduler = None
        if lock_acquired:
            release_scheduler_lock()
        set_scheduler_active(False)
        db.close_engine()
        logger.info("Application shutdown", extra={"env": settings.app_env})


app_info = AppInfo()

app = FastAPI(title=app_info.name, version=app_info.version, lifespan=lifespan)

_configure_middlewares(app)
app.include_router(get_api_router())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", exc_info=exc)
    payload = error_response("INTERNAL_SERVER_ERROR", "An unexpected error occurred.")
    return JSONResponse(status_code=500, content=payload)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        content: dict[str, Any] = detail
    else:
        content = error_response("HTTP_ERROR", str(detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


__all__ = ["app"]
