"""Daily payout worker.

One run gathers everything releasable, attaches it to a batch and submits the
items to the provider one by one. A run that dies mid-batch is picked up by the
next one: the open batch is reused and its pending or processing items are
resubmitted under the same reference.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import Settings
from app.models import (
    Dispute,
    DisputeStatus,
    EscrowStatus,
    Job,
    PayoutBatch,
    PayoutBatchStatus,
    PayoutItem,
    PayoutItemStatus,
    PayoutKind,
    ReleaseSource,
)
from app.models.payout import TERMINAL_ITEM_STATUSES
from app.services import bank_accounts as bank_accounts_service
from app.services import ledger
from app.services import milestones as milestones_service
from app.services import notifications as notifications_service
from app.services.payfast import PayoutClient, PayoutResult, build_payout_payload, payout_client_for, payout_reference
from app.utils.errors import NotFound, ProviderError, TransientError
from app.utils.money import to_money
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

NO_BANK_ACCOUNT = "no verified bank account"

Sleeper = Callable[[float], Awaitable[None]]


@dataclass
class PayoutRunResult:
    batch_id: int | None = None
    reference: str | None = None
    status: str = "idle"
    completed: int = 0
    failed: int = 0

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0


def _collect(db: Session, now: datetime) -> tuple[int | None, list[int]]:
    """Turn releasables into batched items. Returns (batch id, item ids to submit)."""

    with ledger.unit_of_work(db):
        releasables = ledger.list_releasable(db, now)
        batch = ledger.resume_open_batch(db)
        if not releasables and batch is None:
            return None, []

        item_ids: list[int] = []
        for entry in releasables:
            if entry.item is not None:
                item_ids.append(entry.item.id)
                continue
            item_ids.append(
                ledger.append_payout_item(
                    db,
                    escrow=entry.escrow,
                    milestone=entry.milestone,
                    amount=entry.amount,
                    kind=entry.kind,
                    dispute_id=entry.dispute_id,
                )
            )
        items = list(db.scalars(select(PayoutItem).where(PayoutItem.id.in_(item_ids)))) if item_ids else []
        batch_id = ledger.record_payout_batch(db, items, batch_date=now.date(), batch=batch)
    return batch_id, sorted(item_ids)


def _notify_result(db: Session, item: PayoutItem) -> None:
    if item.status == PayoutItemStatus.COMPLETED:
        notifications_service.notify(
            db,
            user_id=item.freelancer_id,
            kind="payout_sent",
            title="Payout Sent",
            message=f"R{to_money(item.amount)} has been sent to your bank account (ref {item.provider_ref}).",
            related_entity="payout",
            related_id=item.id,
        )
    else:
        notifications_service.notify(
            db,
            user_id=item.freelancer_id,
            kind="payout_failed",
            title="Payout Failed",
            message=f"Your payout of R{to_money(item.amount)} failed: {item.error_message}",
            related_entity="payout",
            related_id=item.id,
        )


def _replace_stranded_milestone_payout(db: Session, item: PayoutItem) -> None:
    """Re-owe a failed milestone payout whose escrow left ``held`` while it was in flight.

    A released escrow gets the amount back as a new release or dispute item. A
    refunded escrow needs the money returned to the client by hand.
    """

    if item.kind != PayoutKind.MILESTONE:
        return
    escrow = item.escrow
    if escrow.status == EscrowStatus.RELEASED:
        dispute_id = None
        kind = PayoutKind.RELEASE
        if escrow.release_source == ReleaseSource.DISPUTE:
            kind = PayoutKind.DISPUTE
            dispute_id = db.scalar(
                select(Dispute.id)
                .where(Dispute.escrow_id == escrow.id, Dispute.status == DisputeStatus.RESOLVED)
                .order_by(Dispute.id.desc())
                .limit(1)
            )
        new_id = ledger.append_payout_item(
            db, escrow=escrow, milestone=None, amount=item.amount, kind=kind, dispute_id=dispute_id
        )
        logger.warning(
            "Failed milestone payout re-queued",
            extra={"item_id": item.id, "replacement_id": new_id, "kind": kind.value},
        )
    elif escrow.status == EscrowStatus.REFUNDED:
        notifications_service.notify_operators(
            db,
            kind="payout_refund_needed",
            title="Manual Refund Needed",
            message=f"Payout #{item.id} of R{to_money(item.amount)} failed after escrow #{escrow.id} "
            "was refunded; return it to the client.",
            related_entity="payout",
            related_id=item.id,
        )


def _settle(db: Session, item_id: int, result: PayoutResult) -> PayoutItem:
    with ledger.unit_of_work(db):
        if result.success:
            item, changed = ledger.mark_payout_item_result(
                db, item_id, PayoutItemStatus.COMPLETED, provider_ref=result.provider_ref
            )
            if changed:
                milestones_service.on_payout_completed(db, item)
        else:
            item, changed = ledger.mark_payout_item_result(
                db, item_id, PayoutItemStatus.FAILED, error=result.message
            )
            if changed:
                _replace_stranded_milestone_payout(db, item)
        if changed:
            _notify_result(db, item)
    return item


async def _submit_with_retry(
    client: PayoutClient, payload: dict[str, str], *, settings: Settings, sleep: Sleeper
) -> PayoutResult:
    attempts = max(1, settings.PAYOUT_MAX_ATTEMPTS)
    for attempt in range(attempts):
        try:
            return await client.submit(payload)
        except ProviderError as exc:
            return PayoutResult(success=False, message=exc.message)
        except TransientError as exc:
            logger.warning(
                "Payout submission failed; retrying",
                extra={"reference": payload.get("reference"), "attempt": attempt + 1, "error": exc.message},
            )
            if attempt + 1 >= attempts:
                return PayoutResult(success=False, message=exc.message)
            await sleep(settings.PAYOUT_RETRY_BACKOFF_SECONDS * 2**attempt)
    return PayoutResult(success=False, message="payout not attempted")


async def _process_item(
    db: Session, item_id: int, *, settings: Settings, client: PayoutClient, sleep: Sleeper
) -> PayoutItem | None:
    with ledger.unit_of_work(db):
        item = db.get(PayoutItem, item_id)
        if item is None or item.status in TERMINAL_ITEM_STATUSES:
            return item
        if item.status == PayoutItemStatus.PENDING and not ledger.pending_item_payable(item):
            # Back to the unbatched pool until the dispute is settled.
            item.batch_id = None
            logger.info(
                "Payout skipped; escrow frozen",
                extra={"item_id": item.id, "escrow_status": item.escrow.status.value},
            )
            return item
        account = bank_accounts_service.get_primary_verified(db, item.freelancer_id)
        if account is None:
            item, _ = ledger.mark_payout_item_result(db, item.id, PayoutItemStatus.FAILED, error=NO_BANK_ACCOUNT)
            _notify_result(db, item)
            logger.warning("Payout failed", extra={"item_id": item.id, "error": NO_BANK_ACCOUNT})
            return item
        job = db.get(Job, item.job_id)
        reference = item.reference or payout_reference(job.reference if job else str(item.job_id), item.id)
        payload = build_payout_payload(settings, amount=to_money(item.amount), bank_account=account, reference=reference)
        ledger.mark_item_processing(db, item, reference=reference)

    result = await _submit_with_retry(client, payload, settings=settings, sleep=sleep)
    item = _settle(db, item_id, result)
    logger.info(
        "Payout processed",
        extra={
            "item_id": item.id,
            "reference": reference,
            "status": item.status.value,
            "provider_ref": item.provider_ref,
            "error": item.error_message,
        },
    )
    return item


async def run_daily_payouts(
    db: Session,
    *,
    settings: Settings,
    client: PayoutClient | None = None,
    sleep: Sleeper = asyncio.sleep,
    now: datetime | None = None,
) -> PayoutRunResult:
    """Pay out everything releasable as of ``now``; the result carries the exit code."""

    now = now or utcnow()
    client = client or payout_client_for(settings)
    batch_id, item_ids = _collect(db, now)
    if batch_id is None:
        logger.info("No payouts to process")
        return PayoutRunResult()

    for position, item_id in enumerate(item_ids):
        if position:
            await sleep(settings.PAYOUT_THROTTLE_SECONDS)
        await _process_item(db, item_id, settings=settings, client=client, sleep=sleep)

    with ledger.unit_of_work(db):
        batch = ledger.finish_payout_batch(db, batch_id)
        statuses = [item.status for item in db.scalars(select(PayoutItem).where(PayoutItem.batch_id == batch_id))]
        result = PayoutRunResult(
            batch_id=batch.id,
            reference=batch.reference,
            status=batch.status.value,
            completed=statuses.count(PayoutItemStatus.COMPLETED),
            failed=statuses.count(PayoutItemStatus.FAILED),
        )
    log = logger.error if result.failed else logger.info
    log(
        "Payout batch finished",
        extra={
            "batch": result.reference,
            "status": result.status,
            "completed": result.completed,
            "failed": result.failed,
        },
    )
    return result


def list_payouts_for_user(db: Session, user_id: int, *, limit: int = 100) -> list[PayoutItem]:
    stmt = (
        select(PayoutItem)
        .where(PayoutItem.freelancer_id == user_id)
        .order_by(PayoutItem.id.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt))


def list_batches(db: Session, *, status: PayoutBatchStatus | None = None, limit: int = 50) -> list[PayoutBatch]:
    stmt = select(PayoutBatch).order_by(PayoutBatch.id.desc()).limit(limit)
    if status is not None:
        stmt = stmt.where(PayoutBatch.status == status)
    return list(db.scalars(stmt))


def get_batch(db: Session, batch_id: int) -> PayoutBatch:
    batch = db.get(PayoutBatch, batch_id)
    if batch is None:
        raise NotFound("Payout batch not found.", code="PAYOUT_BATCH_NOT_FOUND")
    return batch


__all__ = [
    "NO_BANK_ACCOUNT",
    "PayoutRunResult",
    "run_daily_payouts",
    "list_payouts_for_user",
    "list_batches",
    "get_batch",
]
