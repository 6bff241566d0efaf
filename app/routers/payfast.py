"""PayFast ITN endpoint."""
from __future__ import annotations

import functools
import logging
import time

import anyio
import anyio.to_thread
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.db import SessionHandoff, get_db
from app.models import DeliveryOutcome
from app.schemas.payfast import WebhookAck
from app.services import payfast, webhooks
from app.services.signature import verify_signature
from app.utils.errors import OriginRejected, SignatureMismatch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payfast", tags=["payfast"])


@router.post("/webhook", response_model=WebhookAck, status_code=status.HTTP_200_OK)
async def payfast_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> WebhookAck:
    """Verify origin and signature, then reconcile within the webhook budget.

    Once the signature checks out the answer is always 200; the outcome is kept
    in the delivery log.
    """

    form = await request.form()
    fields = {key: str(value) for key, value in form.items()}

    if settings.is_production:
        client_host = request.client.host if request.client else None
        if not await payfast.is_valid_origin(client_host):
            logger.warning("PayFast ITN from unexpected origin", extra={"client_host": client_host})
            raise OriginRejected("Notification origin is not a PayFast host.")

    if not verify_signature(fields, fields.get("signature"), settings.PAYFAST_PASSPHRASE):
        logger.warning(
            "PayFast ITN rejected: signature mismatch",
            extra={"correlation_id": fields.get("m_payment_id")},
        )
        raise SignatureMismatch("Invalid signature.")

    deadline = time.monotonic() + settings.WEBHOOK_TIMEOUT_SECONDS
    handoff = SessionHandoff()
    request.state.session_handoff = handoff
    work = functools.partial(_reconcile, db, fields, settings=settings, deadline=deadline, handoff=handoff)
    try:
        with anyio.fail_after(settings.WEBHOOK_TIMEOUT_SECONDS):
            result = await anyio.to_thread.run_sync(work, abandon_on_cancel=True)
    except TimeoutError:
        # The worker finishes in the background and stores the timeout outcome.
        handoff.abandon()
        logger.error(
            "PayFast ITN exceeded the webhook budget",
            extra={
                "correlation_id": fields.get("m_payment_id"),
                "timeout_seconds": settings.WEBHOOK_TIMEOUT_SECONDS,
            },
        )
        return WebhookAck(ok=True, outcome=DeliveryOutcome.TIMEOUT.value)
    return WebhookAck(ok=True, outcome=result.outcome.value)


def _reconcile(
    db: Session, fields: dict[str, str], *, settings: Settings, deadline: float, handoff: SessionHandoff
) -> webhooks.DeliveryResult:
    """Runs in a worker thread that keeps going after the request gives up on it."""

    try:
        return webhooks.handle_delivery(db, fields, settings=settings, deadline=deadline)
    finally:
        handoff.worker_done(db)


__all__ = ["router"]
