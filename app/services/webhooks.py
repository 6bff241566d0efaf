"""PayFast ITN reconciliation.

Every signature-valid delivery is logged in ``webhook_deliveries``. The provider
always gets a 200; failures and timeouts stay in that table as the operator
dead-letter queue and can be replayed once the cause is fixed.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import Settings
from app.models import (
    Application,
    ApplicationStatus,
    DeliveryOutcome,
    EscrowStatus,
    Job,
    JobPaymentStatus,
    JobStatus,
    ProviderTransaction,
    User,
    WebhookDelivery,
)
from app.models.webhook_delivery import DEAD_LETTER_OUTCOMES
from app.schemas.payfast import ProviderNotification, ProviderPaymentStatus
from app.services import escrow as escrow_service
from app.services import ledger
from app.services import milestones as milestones_service
from app.services import notifications as notifications_service
from app.services.ledger import Actor, ActorRole
from app.utils.audit import log_audit
from app.utils.errors import Conflict, Forbidden, IllegalTransition, NotFound
from app.utils.time import utcnow

logger = logging.getLogger(__name__)


class DeliveryTimeout(Exception):
    """Raised inside the unit of work when the wall-clock budget is spent."""


@dataclass
class DeliveryResult:
    delivery_id: int | None
    outcome: DeliveryOutcome
    escrow_id: int | None = None
    error: str | None = None


def _record_delivery(db: Session, fields: Mapping[str, str]) -> WebhookDelivery:
    delivery = WebhookDelivery(
        provider="payfast",
        correlation_id=(fields.get("m_payment_id") or "")[:64],
        payment_status=(fields.get("payment_status") or "").upper()[:20],
        pf_payment_id=fields.get("pf_payment_id") or None,
        outcome=DeliveryOutcome.RECEIVED,
        raw_json={key: value for key, value in fields.items() if key != "signature"},
        received_at=utcnow(),
    )
    db.add(delivery)
    db.commit()
    db.refresh(delivery)
    return delivery


def _finish(
    db: Session,
    delivery: WebhookDelivery,
    delivery_id: int,
    outcome: DeliveryOutcome,
    *,
    fields: Mapping[str, str],
    escrow_id: int | None = None,
    error: str | None = None,
) -> DeliveryResult:
    log_extra = {
        "delivery_id": delivery_id,
        "correlation_id": fields.get("m_payment_id"),
        "payment_status": fields.get("payment_status"),
        "outcome": outcome.value,
        "error": error,
    }
    try:
        delivery.outcome = outcome
        delivery.error = error
        delivery.processed_at = utcnow()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("PayFast ITN outcome could not be stored", extra=log_extra)
        return DeliveryResult(
            delivery_id=delivery_id,
            outcome=DeliveryOutcome.FAILED,
            escrow_id=escrow_id,
            error=f"{exc.__class__.__name__}: {exc}",
        )
    log = logger.error if outcome in DEAD_LETTER_OUTCOMES else logger.info
    log("PayFast ITN handled", extra=log_extra)
    return DeliveryResult(delivery_id=delivery_id, outcome=outcome, escrow_id=escrow_id, error=error)


def handle_delivery(
    db: Session,
    fields: Mapping[str, str],
    *,
    settings: Settings,
    deadline: float | None = None,
    delivery: WebhookDelivery | None = None,
) -> DeliveryResult:
    """Reconcile one signature-valid notification; never raises.

    ``deadline`` is a ``time.monotonic()`` value; past it, the unit of work is
    rolled back instead of committed and the delivery is marked as a timeout.
    A database failure while logging the delivery is reported as a failed
    outcome with no ``delivery_id``.
    """

    if delivery is None:
        try:
            delivery = _record_delivery(db, fields)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception(
                "PayFast ITN could not be recorded", extra={"correlation_id": fields.get("m_payment_id")}
            )
            return DeliveryResult(
                delivery_id=None, outcome=DeliveryOutcome.FAILED, error=f"{exc.__class__.__name__}: {exc}"
            )
    # A rollback below expires the row; keep the key for the outcome update and logs.
    delivery_id = delivery.id
    try:
        notification = ProviderNotification.from_fields(fields)
    except ValueError as exc:
        return _finish(
            db, delivery, delivery_id, DeliveryOutcome.FAILED, fields=fields, error=f"invalid notification: {exc}"
        )

    try:
        with ledger.unit_of_work(db):
            outcome, escrow_id = reconcile(db, notification, settings=settings)
            if deadline is not None and time.monotonic() > deadline:
                raise DeliveryTimeout()
    except DeliveryTimeout:
        return _finish(
            db,
            delivery,
            delivery_id,
            DeliveryOutcome.TIMEOUT,
            fields=fields,
            error="processing exceeded the webhook budget",
        )
    except Conflict:
        # A concurrent delivery created the escrow first.
        return _finish(db, delivery, delivery_id, DeliveryOutcome.DUPLICATE, fields=fields)
    except Exception as exc:  # noqa: BLE001
        logger.exception("PayFast ITN processing failed", extra={"correlation_id": notification.correlation_id})
        return _finish(
            db, delivery, delivery_id, DeliveryOutcome.FAILED, fields=fields, error=f"{exc.__class__.__name__}: {exc}"
        )
    return _finish(db, delivery, delivery_id, outcome, fields=fields, escrow_id=escrow_id)


def reconcile(
    db: Session, notification: ProviderNotification, *, settings: Settings
) -> tuple[DeliveryOutcome, int | None]:
    """Apply the side effects of one notification inside the caller's unit of work."""

    txn, created = ledger.upsert_provider_transaction(db, notification)
    status = notification.payment_status
    if not created and txn.last_processed_status == status.value:
        logger.info(
            "Duplicate PayFast ITN ignored",
            extra={"correlation_id": notification.correlation_id, "payment_status": status.value},
        )
        existing = ledger.get_escrow_by_correlation(db, notification.correlation_id)
        return DeliveryOutcome.DUPLICATE, existing.id if existing else None

    escrow_id: int | None = None
    outcome = DeliveryOutcome.PROCESSED
    if status == ProviderPaymentStatus.COMPLETE:
        escrow_id, fresh = _on_complete(db, notification, txn, settings)
        if not fresh:
            outcome = DeliveryOutcome.DUPLICATE
    elif status == ProviderPaymentStatus.FAILED:
        _on_failed(db, notification)
    elif status == ProviderPaymentStatus.CANCELLED:
        logger.info("PayFast payment cancelled", extra={"correlation_id": notification.correlation_id})
        _cancel_pending(db, notification, reason="provider cancelled")
    else:
        logger.info("PayFast payment pending", extra={"correlation_id": notification.correlation_id})

    txn.last_processed_status = status.value
    db.flush()
    return outcome, escrow_id


def _find_by_reference(db: Session, model, ref: str | None):
    if not ref:
        return None
    row = db.execute(select(model).where(model.reference == ref)).scalar_one_or_none()
    if row is None and ref.isdigit():
        row = db.get(model, int(ref))
    return row


def _on_complete(
    db: Session, notification: ProviderNotification, txn: ProviderTransaction, settings: Settings
) -> tuple[int, bool]:
    existing = ledger.get_escrow_by_correlation(db, notification.correlation_id, for_update=True)
    if existing is not None:
        if existing.status == EscrowStatus.PENDING:
            ledger.update_escrow_status(db, existing, EscrowStatus.HELD, actor=Actor.system())
            return existing.id, True
        return existing.id, False

    correlation = notification.correlation
    job = _find_by_reference(db, Job, correlation.job_ref)
    if job is None:
        raise NotFound("Job referenced by the payment does not exist.", details={"job_ref": correlation.job_ref})
    freelancer = _find_by_reference(db, User, correlation.freelancer_ref)
    if freelancer is None:
        raise NotFound(
            "Freelancer referenced by the payment does not exist.",
            details={"freelancer_ref": correlation.freelancer_ref},
        )
    application = _find_by_reference(db, Application, correlation.application_ref)
    if application is None:
        application = db.execute(
            select(Application).where(Application.job_id == job.id, Application.freelancer_id == freelancer.id)
        ).scalars().first()

    fee, net = escrow_service.split_fee(notification.amount_gross, settings.PLATFORM_FEE_PERCENT)
    drafts, flagged = milestones_service.draft_plan(
        job.milestone_plan, net, max_revisions=settings.MILESTONE_MAX_REVISIONS
    )
    escrow = ledger.create_escrow_with_milestones(
        db,
        job=job,
        correlation_id=notification.correlation_id,
        freelancer_id=freelancer.id,
        application_id=application.id if application else None,
        gross=notification.amount_gross,
        fee_percent=settings.PLATFORM_FEE_PERCENT,
        platform_fee=fee,
        net=net,
        currency=settings.CURRENCY,
        milestones=drafts,
        plan_flagged=flagged,
        provider_transaction=txn,
        payment_provider_id=notification.pf_payment_id,
        actor=Actor.system(),
    )

    job.status = JobStatus.IN_PROGRESS
    job.payment_status = JobPaymentStatus.PAID
    job.accepted_freelancer_id = freelancer.id
    if application is not None:
        application.status = ApplicationStatus.ACCEPTED
        application.reviewed_at = utcnow()

    notifications_service.notify(
        db,
        user_id=freelancer.id,
        kind="payment_received",
        title="Payment Received - Start Working!",
        message=f"The client has paid R{notification.amount_gross} for '{job.title}'. "
        "Funds are held in escrow; you can start working.",
        related_entity="escrow",
        related_id=escrow.id,
    )
    notifications_service.notify(
        db,
        user_id=job.client_id,
        kind="payment_confirmed",
        title="Payment Confirmed",
        message=f"Your payment of R{notification.amount_gross} for '{job.title}' is held in escrow.",
        related_entity="escrow",
        related_id=escrow.id,
    )
    if flagged:
        notifications_service.notify_operators(
            db,
            kind="plan_flagged",
            title="Milestone Plan Needs Correction",
            message=f"Escrow #{escrow.id} has milestone percentages that do not sum to 100.",
            related_entity="escrow",
            related_id=escrow.id,
        )
    return escrow.id, True


def _on_failed(db: Session, notification: ProviderNotification) -> None:
    job = _find_by_reference(db, Job, notification.correlation.job_ref)
    if job is not None:
        notifications_service.notify(
            db,
            user_id=job.client_id,
            kind="payment_failed",
            title="Payment Failed",
            message=f"Your payment for '{job.title}' failed. Please try again.",
            related_entity="job",
            related_id=job.id,
        )
    else:
        logger.warning("Failed payment for unknown job", extra={"correlation_id": notification.correlation_id})
    _cancel_pending(db, notification, reason="provider failed")


def _cancel_pending(db: Session, notification: ProviderNotification, *, reason: str) -> None:
    escrow = ledger.get_escrow_by_correlation(db, notification.correlation_id, for_update=True)
    if escrow is not None and escrow.status == EscrowStatus.PENDING:
        escrow_service.cancel_pending_escrow(db, escrow, reason=reason)


def list_deliveries(
    db: Session, *, outcome: DeliveryOutcome | None = None, dead_letter_only: bool = True, limit: int = 100
) -> list[WebhookDelivery]:
    stmt = select(WebhookDelivery).order_by(WebhookDelivery.id.desc()).limit(limit)
    if outcome is not None:
        stmt = stmt.where(WebhookDelivery.outcome == outcome)
    elif dead_letter_only:
        stmt = stmt.where(WebhookDelivery.outcome.in_(DEAD_LETTER_OUTCOMES))
    return list(db.scalars(stmt))


def replay_delivery(db: Session, delivery_id: int, *, actor: Actor, settings: Settings) -> DeliveryResult:
    """Re-run a dead-lettered delivery from its stored payload."""

    if actor.role != ActorRole.OPERATOR:
        raise Forbidden("Only operators may replay webhook deliveries.")
    delivery = db.get(WebhookDelivery, delivery_id)
    if delivery is None:
        raise NotFound("Webhook delivery not found.", code="DELIVERY_NOT_FOUND")
    if delivery.outcome not in DEAD_LETTER_OUTCOMES:
        raise IllegalTransition(
            f"Only failed or timed-out deliveries can be replayed; this one is {delivery.outcome.value}.",
            details={"delivery_id": delivery.id},
        )
    delivery.replayed_at = utcnow()
    log_audit(
        db,
        actor=actor.label,
        action="WEBHOOK_DELIVERY_REPLAYED",
        entity="WebhookDelivery",
        entity_id=delivery.id,
        data={"correlation_id": delivery.correlation_id, "previous_outcome": delivery.outcome.value},
    )
    db.commit()
    return handle_delivery(db, dict(delivery.raw_json), settings=settings, delivery=delivery)


__all__ = ["DeliveryResult", "handle_delivery", "reconcile", "list_deliveries", "replay_delivery"]
