"""Per-actor payment statistics."""
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.models import Dispute, Escrow, EscrowStatus, PayoutItem, PayoutItemStatus
from app.models.dispute import OPEN_DISPUTE_STATUSES
from app.schemas.payout import PaymentStats
from app.services import ledger
from app.services.ledger import Actor
from app.utils.money import ZERO, to_money

ACTIVE_STATUSES = (EscrowStatus.HELD, EscrowStatus.DISPUTED)
FUNDED_STATUSES = (EscrowStatus.HELD, EscrowStatus.DISPUTED, EscrowStatus.RELEASED, EscrowStatus.REFUNDED)


def payment_stats(db: Session, *, actor: Actor) -> PaymentStats:
    """Totals the actor is a party to; operators and the service see the whole platform."""

    escrow_filter = []
    item_filter = []
    dispute_filter = []
    if not actor.is_privileged:
        escrow_filter = [or_(Escrow.client_id == actor.user_id, Escrow.freelancer_id == actor.user_id)]
        item_filter = [PayoutItem.freelancer_id == actor.user_id]
        dispute_filter = [or_(Dispute.raised_by_id == actor.user_id, Dispute.counter_party_id == actor.user_id)]

    paid_stmt = select(func.coalesce(func.sum(Escrow.gross_amount), 0)).where(Escrow.status.in_(FUNDED_STATUSES))
    if not actor.is_privileged:
        paid_stmt = paid_stmt.where(Escrow.client_id == actor.user_id)
    total_paid = to_money(db.scalar(paid_stmt))

    total_received = to_money(
        db.scalar(
            select(func.coalesce(func.sum(PayoutItem.amount), 0)).where(
                PayoutItem.status == PayoutItemStatus.COMPLETED, *item_filter
            )
        )
    )
    pending_payouts = to_money(
        db.scalar(
            select(func.coalesce(func.sum(PayoutItem.amount), 0)).where(
                PayoutItem.status.in_([PayoutItemStatus.PENDING, PayoutItemStatus.PROCESSING]), *item_filter
            )
        )
    )

    active = list(db.scalars(select(Escrow).where(Escrow.status.in_(ACTIVE_STATUSES), *escrow_filter)))
    held = sum((ledger.outstanding(db, escrow) for escrow in active), ZERO)

    open_disputes = db.scalar(
        select(func.count(Dispute.id)).where(Dispute.status.in_(OPEN_DISPUTE_STATUSES), *dispute_filter)
    )
    return PaymentStats(
        total_paid=total_paid,
        total_received=total_received,
        held_in_escrow=held,
        pending_payouts=pending_payouts,
        active_escrows=len(active),
        open_disputes=int(open_disputes or 0),
    )


__all__ = ["payment_stats"]
