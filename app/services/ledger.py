"""Ledger store: durable escrow state and per-actor access.

Every operation takes the requesting :class:`Actor` explicitly. Functions here only
flush; callers compose them inside :func:`unit_of_work`, which commits or rolls back
the whole cross-row change.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.models import (
    ALLOWED_TRANSITIONS,
    Dispute,
    Escrow,
    EscrowEvent,
    EscrowStatus,
    Job,
    Milestone,
    MilestoneStatus,
    PayoutBatch,
    PayoutBatchStatus,
    PayoutItem,
    PayoutItemStatus,
    PayoutKind,
    ProviderTransaction,
    ReleaseSource,
)
from app.models.payout import TERMINAL_ITEM_STATUSES
from app.schemas.payfast import ProviderNotification
from app.utils.audit import log_audit
from app.utils.errors import Conflict, Forbidden, IllegalTransition, NotFound, TransientError
from app.utils.money import ZERO, to_money
from app.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)


class ActorRole(str, Enum):
    USER = "user"
    OPERATOR = "operator"
    SERVICE = "service"


@dataclass(frozen=True)
class Actor:
    """Identity on whose behalf a ledger operation runs."""

    role: ActorRole
    user_id: int | None = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(role=ActorRole.SERVICE)

    @property
    def is_privileged(self) -> bool:
        return self.role in (ActorRole.OPERATOR, ActorRole.SERVICE)

    @property
    def label(self) -> str:
        if self.role == ActorRole.SERVICE:
            return "system"
        return f"{self.role.value}:{self.user_id}"


@dataclass
class MilestoneDraft:
    idx: int
    description: str
    percentage: Decimal
    amount: Decimal
    status: MilestoneStatus
    max_revisions: int
    due_date: datetime | None = None


@dataclass
class Releasable:
    """Something the payout worker should pay: a new obligation or an item to resume."""

    escrow: Escrow
    kind: PayoutKind
    amount: Decimal
    milestone: Milestone | None = None
    dispute_id: int | None = None
    item: PayoutItem | None = None
    reasons: list[str] = field(default_factory=list)


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or nothing.

    On PostgreSQL the transaction runs at SERIALIZABLE isolation; serialization
    failures surface as :class:`TransientError`.
    """

    if not db.in_transaction() and db.get_bind().dialect.name == "postgresql":
        db.connection(execution_options={"isolation_level": "SERIALIZABLE"})
    try:
        yield db
        db.commit()
    except OperationalError as exc:
        db.rollback()
        logger.warning("Ledger unit of work failed", extra={"error": str(exc.orig)})
        raise TransientError("Ledger temporarily unavailable; retry.") from exc
    except Exception:
        db.rollback()
        raise


# --- Access -----------------------------------------------------------------


def is_party(escrow: Escrow, actor: Actor) -> bool:
    return actor.user_id is not None and actor.user_id in (escrow.client_id, escrow.freelancer_id)


def ensure_can_read(escrow: Escrow, actor: Actor) -> None:
    if actor.is_privileged or is_party(escrow, actor):
        return
    raise Forbidden("Not a party to this escrow.", details={"escrow_id": escrow.id})


def get_escrow(db: Session, escrow_id: int, *, actor: Actor, for_update: bool = False) -> Escrow:
    """Return the escrow or raise NotFound / Forbidden."""

    stmt = select(Escrow).where(Escrow.id == escrow_id)
    if for_update:
        stmt = stmt.with_for_update()
    escrow = db.execute(stmt).scalar_one_or_none()
    if escrow is None:
        raise NotFound("Escrow not found.", code="ESCROW_NOT_FOUND")
    ensure_can_read(escrow, actor)
    return escrow


def get_escrow_by_correlation(db: Session, correlation_id: str, *, for_update: bool = False) -> Escrow | None:
    stmt = select(Escrow).where(Escrow.correlation_id == correlation_id)
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def active_dispute(db: Session, escrow: Escrow) -> Dispute | None:
    if escrow.active_dispute_id is None:
        return None
    return db.get(Dispute, escrow.active_dispute_id)


def list_escrows(db: Session, *, actor: Actor, status: EscrowStatus | None = None) -> list[Escrow]:
    stmt = select(Escrow).order_by(Escrow.id.desc())
    if not actor.is_privileged:
        stmt = stmt.where((Escrow.client_id == actor.user_id) | (Escrow.freelancer_id == actor.user_id))
    if status is not None:
        stmt = stmt.where(Escrow.status == status)
    return list(db.scalars(stmt))


# --- Provider transactions ------------------------------------------------------


def upsert_provider_transaction(
    db: Session, notification: ProviderNotification
) -> tuple[ProviderTransaction, bool]:
    """Insert or update the transaction keyed by correlation id; report creation."""

    stmt = (
        select(ProviderTransaction)
        .where(ProviderTransaction.correlation_id == notification.correlation_id)
        .with_for_update()
    )
    txn = db.execute(stmt).scalar_one_or_none()
    created = False
    if txn is None:
        txn = ProviderTransaction(correlation_id=notification.correlation_id)
        _apply_notification(txn, notification)
        try:
            with db.begin_nested():
                db.add(txn)
            created = True
        except IntegrityError:
            # A concurrent delivery inserted it first.
            txn = db.execute(stmt).scalar_one()
    if not created:
        _apply_notification(txn, notification)
    db.flush()
    return txn, created


def _apply_notification(txn: ProviderTransaction, notification: ProviderNotification) -> None:
    txn.pf_payment_id = notification.pf_payment_id
    txn.payment_status = notification.payment_status.value
    txn.amount_gross = notification.amount_gross
    txn.amount_fee = notification.amount_fee
    txn.amount_net = notification.amount_net
    txn.item_name = notification.item_name
    txn.item_description = notification.item_description
    txn.email_address = notification.email_address
    txn.merchant_id = notification.merchant_id
    txn.job_ref = notification.correlation.job_ref
    txn.freelancer_ref = notification.correlation.freelancer_ref
    txn.application_ref = notification.correlation.application_ref
    txn.raw_json = dict(notification.raw)


# --- Escrow --------------------------------------------------------------------


def create_escrow_with_milestones(
    db: Session,
    *,
    job: Job,
    correlation_id: str,
    freelancer_id: int,
    application_id: int | None,
    gross: Decimal,
    fee_percent: Decimal,
    platform_fee: Decimal,
    net: Decimal,
    currency: str,
    milestones: Sequence[MilestoneDraft],
    plan_flagged: bool,
    provider_transaction: ProviderTransaction | None = None,
    payment_provider_id: str | None = None,
    actor: Actor,
) -> Escrow:
    """Create a held escrow and its milestones, or raise Conflict."""

    if get_escrow_by_correlation(db, correlation_id) is not None:
        raise Conflict("Escrow already exists for this payment.", details={"correlation_id": correlation_id})

    now = utcnow()
    escrow = Escrow(
        job_id=job.id,
        application_id=application_id,
        client_id=job.client_id,
        freelancer_id=freelancer_id,
        correlation_id=correlation_id,
        provider_transaction_id=provider_transaction.id if provider_transaction else None,
        payment_provider_id=payment_provider_id,
        gross_amount=gross,
        fee_percent=fee_percent,
        platform_fee=platform_fee,
        net_amount=net,
        currency=currency,
        status=EscrowStatus.HELD,
        plan_flagged=plan_flagged,
        held_at=now,
    )
    try:
        with db.begin_nested():
            db.add(escrow)
    except IntegrityError as exc:
        raise Conflict(
            "Escrow already exists for this payment.", details={"correlation_id": correlation_id}
        ) from exc

    for draft in milestones:
        db.add(
            Milestone(
                escrow_id=escrow.id,
                idx=draft.idx,
                description=draft.description,
                percentage=draft.percentage,
                amount=draft.amount,
                due_date=draft.due_date,
                status=draft.status,
                max_revisions=draft.max_revisions,
                started_at=now if draft.status == MilestoneStatus.IN_PROGRESS else None,
            )
        )
    add_event(
        db,
        escrow,
        "HELD",
        actor=actor,
        data={"gross": str(gross), "fee": str(platform_fee), "net": str(net), "plan_flagged": plan_flagged},
    )
    log_audit(
        db,
        actor=actor.label,
        action="ESCROW_CREATED",
        entity="Escrow",
        entity_id=escrow.id,
        data={"correlation_id": correlation_id, "gross": str(gross), "net": str(net)},
    )
    db.flush()
    logger.info("Escrow created", extra={"escrow_id": escrow.id, "correlation_id": correlation_id})
    return escrow


def add_event(db: Session, escrow: Escrow, kind: str, *, actor: Actor, data: dict[str, Any]) -> None:
    db.add(EscrowEvent(escrow_id=escrow.id, kind=kind, actor=actor.label, data_json=data, at=utcnow()))


def update_escrow_status(
    db: Session,
    escrow: Escrow,
    target: EscrowStatus,
    *,
    actor: Actor,
    release_source: ReleaseSource | None = None,
    reason: str | None = None,
) -> EscrowStatus:
    """Apply a state-machine transition or raise IllegalTransition without mutating."""

    source = escrow.status
    if target not in ALLOWED_TRANSITIONS[source]:
        raise IllegalTransition(
            f"Escrow cannot move from {source.value} to {target.value}.",
            details={"escrow_id": escrow.id, "from": source.value, "to": target.value},
        )
    if target == EscrowStatus.RELEASED and release_source is None:
        raise IllegalTransition("A release needs its source.", details={"escrow_id": escrow.id})

    now = utcnow()
    escrow.status = target
    if target == EscrowStatus.HELD and escrow.held_at is None:
        escrow.held_at = now
    elif target == EscrowStatus.RELEASED:
        escrow.released_at = now
        escrow.release_source = release_source
    elif target == EscrowStatus.REFUNDED:
        escrow.refunded_at = now
    elif target == EscrowStatus.CANCELLED:
        escrow.cancelled_at = now

    data = {"from": source.value, "to": target.value}
    if release_source is not None:
        data["release_source"] = release_source.value
    if reason:
        data["reason"] = reason
    add_event(db, escrow, f"STATUS_{target.value.upper()}", actor=actor, data=data)
    log_audit(db, actor=actor.label, action="ESCROW_STATUS_CHANGED", entity="Escrow", entity_id=escrow.id, data=data)
    db.flush()
    logger.info(
        "Escrow status changed",
        extra={"escrow_id": escrow.id, "from": source.value, "to": target.value},
    )
    return target


def _sum_items(db: Session, escrow_id: int, statuses: Sequence[PayoutItemStatus]) -> Decimal:
    stmt = select(func.coalesce(func.sum(PayoutItem.amount), 0)).where(
        PayoutItem.escrow_id == escrow_id, PayoutItem.status.in_(list(statuses))
    )
    return to_money(db.scalar(stmt) or 0)


def paid_out(db: Session, escrow: Escrow) -> Decimal:
    return _sum_items(db, escrow.id, [PayoutItemStatus.COMPLETED])


def committed(db: Session, escrow: Escrow) -> Decimal:
    """Amount already sent or in flight to the provider."""

    return _sum_items(db, escrow.id, [PayoutItemStatus.COMPLETED, PayoutItemStatus.PROCESSING])


def outstanding(db: Session, escrow: Escrow) -> Decimal:
    """Net still held for the freelancer and not yet committed to a payout."""

    remaining = to_money(escrow.net_amount) - committed(db, escrow)
    return remaining if remaining > ZERO else ZERO


# --- Payouts -------------------------------------------------------------------


def items_for_escrow(
    db: Session, escrow_id: int, statuses: Sequence[PayoutItemStatus] | None = None
) -> list[PayoutItem]:
    stmt = select(PayoutItem).where(PayoutItem.escrow_id == escrow_id).order_by(PayoutItem.id)
    if statuses is not None:
        stmt = stmt.where(PayoutItem.status.in_(list(statuses)))
    return list(db.scalars(stmt))


def fail_unsent_items(db: Session, escrow: Escrow, *, reason: str) -> list[PayoutItem]:
    """Fail pending items that never reached the provider and take them out of their batch."""

    failed = []
    batch_ids: set[int] = set()
    for item in items_for_escrow(db, escrow.id, [PayoutItemStatus.PENDING]):
        if item.batch_id is not None:
            batch_ids.add(item.batch_id)
        item.batch_id = None
        item.status = PayoutItemStatus.FAILED
        item.error_message = reason
        item.completed_at = utcnow()
        failed.append(item)
    if failed:
        db.flush()
    for batch_id in batch_ids:
        _refresh_batch_totals(db, db.get(PayoutBatch, batch_id))
    return failed


def escrow_is_payable(escrow: Escrow) -> bool:
    return escrow.status not in (EscrowStatus.DISPUTED, EscrowStatus.REFUNDED, EscrowStatus.CANCELLED)


def pending_item_payable(item: PayoutItem) -> bool:
    escrow = item.escrow
    if not escrow_is_payable(escrow):
        return False
    return item.kind != PayoutKind.MILESTONE or escrow.status == EscrowStatus.HELD


def list_releasable(db: Session, as_of: datetime) -> list[Releasable]:
    """Everything the payout worker should pay as of ``as_of``.

    Covers approved milestones with no live item, non-milestone releases whose
    last attempt failed, pending items, and processing items of unfinished batches.
    New or pending payouts never come from disputed, refunded or cancelled
    escrows. A processing item is always resumed: its submission already went
    out under its reference.
    """

    as_of = as_utc(as_of)
    found: list[Releasable] = []
    seen_items: set[int] = set()

    open_batch_ids = select(PayoutBatch.id).where(
        PayoutBatch.status.in_([PayoutBatchStatus.PENDING, PayoutBatchStatus.PROCESSING])
    )
    live_items = db.scalars(
        select(PayoutItem)
        .where(
            (PayoutItem.status == PayoutItemStatus.PENDING)
            | (
                (PayoutItem.status == PayoutItemStatus.PROCESSING)
                & PayoutItem.batch_id.in_(open_batch_ids)
            )
        )
        .order_by(PayoutItem.id)
    )
    for item in live_items:
        escrow = item.escrow
        if item.status == PayoutItemStatus.PENDING and not pending_item_payable(item):
            continue
        seen_items.add(item.id)
        found.append(
            Releasable(
                escrow=escrow,
                kind=item.kind,
                amount=to_money(item.amount),
                milestone=item.milestone,
                dispute_id=item.dispute_id,
                item=item,
            )
        )

    approved = db.scalars(
        select(Milestone)
        .join(Escrow, Escrow.id == Milestone.escrow_id)
        .where(
            Milestone.status == MilestoneStatus.APPROVED,
            Escrow.status == EscrowStatus.HELD,
            Escrow.plan_flagged.is_(False),
        )
        .order_by(Milestone.escrow_id, Milestone.idx)
    )
    for milestone in approved:
        due = as_utc(milestone.due_date)
        if due is not None and due > as_of:
            continue
        live = db.scalar(
            select(func.count(PayoutItem.id)).where(
                PayoutItem.milestone_id == milestone.id,
                PayoutItem.status.in_(
                    [PayoutItemStatus.PENDING, PayoutItemStatus.PROCESSING, PayoutItemStatus.COMPLETED]
                ),
            )
        )
        if live:
            continue
        found.append(
            Releasable(
                escrow=milestone.escrow,
                kind=PayoutKind.MILESTONE,
                amount=to_money(milestone.amount),
                milestone=milestone,
            )
        )

    # Failed whole-escrow and dispute payouts are retried with a fresh item.
    failed = db.scalars(
        select(PayoutItem)
        .where(
            PayoutItem.kind.in_([PayoutKind.RELEASE, PayoutKind.DISPUTE]),
            PayoutItem.status == PayoutItemStatus.FAILED,
        )
        .order_by(PayoutItem.id)
    )
    for item in failed:
        escrow = item.escrow
        if escrow.status != EscrowStatus.RELEASED:
            continue
        # Release items belong to a plain release, dispute items to a dispute outcome.
        if (item.kind == PayoutKind.DISPUTE) != (escrow.release_source == ReleaseSource.DISPUTE):
            continue
        newer = db.scalar(
            select(func.count(PayoutItem.id)).where(
                PayoutItem.escrow_id == item.escrow_id,
                PayoutItem.kind == item.kind,
                PayoutItem.amount == item.amount,
                PayoutItem.id > item.id,
            )
        )
        if newer:
            continue
        found.append(
            Releasable(
                escrow=escrow,
                kind=item.kind,
                amount=to_money(item.amount),
                dispute_id=item.dispute_id,
                reasons=["retry"],
            )
        )
    return found


def append_payout_item(
    db: Session,
    *,
    escrow: Escrow,
    milestone: Milestone | None,
    amount: Decimal,
    kind: PayoutKind,
    dispute_id: int | None = None,
) -> int:
    """Queue a payout for the daily worker; return the new item id."""

    if not escrow_is_payable(escrow):
        raise IllegalTransition(
            "No payouts while the escrow is disputed, refunded or cancelled.",
            details={"escrow_id": escrow.id, "status": escrow.status.value},
        )
    amount = to_money(amount)
    if amount <= ZERO:
        raise IllegalTransition("Payout amount must be positive.", details={"escrow_id": escrow.id})
    net = to_money(escrow.net_amount)
    fee_share = to_money(to_money(escrow.platform_fee) * amount / net) if net > ZERO else ZERO
    item = PayoutItem(
        escrow_id=escrow.id,
        milestone_id=milestone.id if milestone else None,
        dispute_id=dispute_id,
        kind=kind,
        freelancer_id=escrow.freelancer_id,
        job_id=escrow.job_id,
        amount=amount,
        fee_amount=fee_share,
        status=PayoutItemStatus.PENDING,
    )
    db.add(item)
    db.flush()
    log_audit(
        db,
        actor="system",
        action="PAYOUT_ITEM_APPENDED",
        entity="PayoutItem",
        entity_id=item.id,
        data={"escrow_id": escrow.id, "kind": kind.value, "amount": str(amount)},
    )
    logger.info(
        "Payout item appended",
        extra={"escrow_id": escrow.id, "item_id": item.id, "kind": kind.value, "amount": str(amount)},
    )
    return item.id


_last_batch_stamp = 0


def _next_batch_reference() -> str:
    global _last_batch_stamp
    stamp = max(time.time_ns() // 1_000_000, _last_batch_stamp + 1)
    _last_batch_stamp = stamp
    return f"BATCH-{stamp}"


def find_open_batch(db: Session) -> PayoutBatch | None:
    stmt = (
        select(PayoutBatch)
        .where(PayoutBatch.status.in_([PayoutBatchStatus.PENDING, PayoutBatchStatus.PROCESSING]))
        .order_by(PayoutBatch.id)
    )
    return db.scalars(stmt).first()


def resume_open_batch(db: Session) -> PayoutBatch | None:
    """Return the unfinished batch if it still has items of its own to submit.

    Pending items of frozen escrows are taken out of the batch. A batch left
    with only settled items is closed so the run starts a fresh one.
    """

    while True:
        batch = find_open_batch(db)
        if batch is None:
            return None
        pending = db.scalars(
            select(PayoutItem).where(
                PayoutItem.batch_id == batch.id, PayoutItem.status == PayoutItemStatus.PENDING
            )
        ).all()
        for item in pending:
            if not pending_item_payable(item):
                item.batch_id = None
        db.flush()
        batch = finish_payout_batch(db, batch.id)
        if batch.status in (PayoutBatchStatus.PENDING, PayoutBatchStatus.PROCESSING):
            return batch
        logger.info("Stale payout batch closed", extra={"batch": batch.reference, "status": batch.status.value})


def record_payout_batch(
    db: Session,
    items: Sequence[PayoutItem],
    *,
    batch_date: date,
    batch: PayoutBatch | None = None,
) -> int:
    """Create (or extend an unfinished) batch in processing and attach ``items``."""

    if batch is None:
        batch = PayoutBatch(
            reference=_next_batch_reference(),
            batch_date=batch_date,
            status=PayoutBatchStatus.PROCESSING,
        )
        db.add(batch)
        db.flush()
    else:
        batch.status = PayoutBatchStatus.PROCESSING
    for item in items:
        item.batch_id = batch.id
    db.flush()
    _refresh_batch_totals(db, batch)
    logger.info("Payout batch recorded", extra={"batch": batch.reference, "count": batch.payout_count})
    return batch.id


def _refresh_batch_totals(db: Session, batch: PayoutBatch) -> None:
    row = db.execute(
        select(
            func.count(PayoutItem.id),
            func.coalesce(func.sum(PayoutItem.amount), 0),
            func.coalesce(func.sum(PayoutItem.fee_amount), 0),
        ).where(PayoutItem.batch_id == batch.id)
    ).one()
    batch.payout_count = int(row[0])
    batch.total_amount = to_money(row[1])
    batch.total_fees = to_money(row[2])
    db.flush()


def mark_payout_item_result(
    db: Session,
    item_id: int,
    status: PayoutItemStatus,
    *,
    provider_ref: str | None = None,
    error: str | None = None,
) -> tuple[PayoutItem, bool]:
    """Record a terminal result; idempotent by (item, status). Returns (item, changed)."""

    if status not in TERMINAL_ITEM_STATUSES:
        raise IllegalTransition("Only terminal payout results can be recorded.")
    item = db.execute(select(PayoutItem).where(PayoutItem.id == item_id).with_for_update()).scalar_one_or_none()
    if item is None:
        raise NotFound("Payout item not found.", code="PAYOUT_ITEM_NOT_FOUND")
    if item.status == status:
        return item, False
    if item.status in TERMINAL_ITEM_STATUSES:
        raise IllegalTransition(
            f"Payout item already {item.status.value}.", details={"item_id": item.id}
        )
    if status == PayoutItemStatus.COMPLETED and not provider_ref:
        raise IllegalTransition("A completed payout needs the provider reference.", details={"item_id": item.id})

    item.status = status
    item.completed_at = utcnow()
    if status == PayoutItemStatus.COMPLETED:
        item.provider_ref = provider_ref
        item.error_message = None
    else:
        item.error_message = error or "payout failed"
    log_audit(
        db,
        actor="system",
        action=f"PAYOUT_ITEM_{status.value.upper()}",
        entity="PayoutItem",
        entity_id=item.id,
        data={"provider_ref": provider_ref, "error": item.error_message},
    )
    db.flush()
    return item, True


def mark_item_processing(db: Session, item: PayoutItem, *, reference: str) -> PayoutItem:
    item.status = PayoutItemStatus.PROCESSING
    item.reference = reference
    item.attempts = (item.attempts or 0) + 1
    item.submitted_at = utcnow()
    db.flush()
    return item


def finish_payout_batch(db: Session, batch_id: int) -> PayoutBatch:
    """Close the batch once all its items are terminal."""

    batch = db.get(PayoutBatch, batch_id)
    if batch is None:
        raise NotFound("Payout batch not found.", code="PAYOUT_BATCH_NOT_FOUND")
    _refresh_batch_totals(db, batch)
    statuses = [item.status for item in db.scalars(select(PayoutItem).where(PayoutItem.batch_id == batch.id))]
    if any(status not in TERMINAL_ITEM_STATUSES for status in statuses):
        return batch
    completed = sum(1 for status in statuses if status == PayoutItemStatus.COMPLETED)
    failed = len(statuses) - completed
    if failed == 0:
        batch.status = PayoutBatchStatus.COMPLETED
        batch.error_message = None
    elif completed == 0:
        batch.status = PayoutBatchStatus.FAILED
        batch.error_message = f"{failed} payout(s) failed"
    else:
        batch.status = PayoutBatchStatus.PARTIAL
        batch.error_message = f"{failed} payout(s) failed"
    batch.processed_at = utcnow()
    db.flush()
    return batch


__all__ = [
    "Actor",
    "ActorRole",
    "MilestoneDraft",
    "Releasable",
    "unit_of_work",
    "is_party",
    "ensure_can_read",
    "get_escrow",
    "get_escrow_by_correlation",
    "active_dispute",
    "list_escrows",
    "escrow_is_payable",
    "pending_item_payable",
    "upsert_provider_transaction",
    "create_escrow_with_milestones",
    "add_event",
    "update_escrow_status",
    "paid_out",
    "committed",
    "outstanding",
    "items_for_escrow",
    "fail_unsent_items",
    "list_releasable",
    "append_payout_item",
    "find_open_batch",
    "resume_open_batch",
    "record_payout_batch",
    "mark_payout_item_result",
    "mark_item_processing",
    "finish_payout_batch",
]
