"""initial escrow schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19 09:00:00
"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _money(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.Numeric(18, 2), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reference", sa.String(length=64), nullable=False, unique=True),
        sa.Column("username", sa.String(length=100), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("full_name", sa.String(length=200), nullable=True),
        sa.Column("is_operator", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_table(
        "api_keys",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False, unique=True),
        sa.Column("prefix", sa.String(length=32), nullable=False),
        sa.Column("key_hash", sa.String(length=128), nullable=False, unique=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reference", sa.String(length=64), nullable=False, unique=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        _money("budget", nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("payment_status", sa.String(length=32), nullable=False),
        sa.Column("accepted_freelancer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("milestone_plan", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "applications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reference", sa.String(length=64), nullable=False, unique=True),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=False, index=True),
        sa.Column("freelancer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "provider_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("correlation_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("pf_payment_id", sa.String(length=64), nullable=True),
        sa.Column("payment_status", sa.String(length=20), nullable=False),
        _money("amount_gross"),
        _money("amount_fee"),
        _money("amount_net"),
        sa.Column("item_name", sa.String(length=255), nullable=True),
        sa.Column("item_description", sa.String(length=500), nullable=True),
        sa.Column("email_address", sa.String(length=255), nullable=True),
        sa.Column("merchant_id", sa.String(length=64), nullable=True),
        sa.Column("job_ref", sa.String(length=64), nullable=True),
        sa.Column("freelancer_ref", sa.String(length=64), nullable=True),
        sa.Column("application_ref", sa.String(length=64), nullable=True),
        sa.Column("last_processed_status", sa.String(length=20), nullable=True),
        sa.Column("raw_json", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_provider_transactions_pf_payment_id", "provider_transactions", ["pf_payment_id"])
    op.create_table(
        "escrows",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=False, index=True),
        sa.Column("application_id", sa.Integer(), sa.ForeignKey("applications.id"), nullable=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("freelancer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("correlation_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column(
            "provider_transaction_id", sa.Integer(), sa.ForeignKey("provider_transactions.id"), nullable=True
        ),
        sa.Column("payment_provider_id", sa.String(length=64), nullable=True),
        _money("gross_amount"),
        sa.Column("fee_percent", sa.Numeric(5, 2), nullable=False),
        _money("platform_fee"),
        _money("net_amount"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="ZAR"),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("plan_flagged", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("active_dispute_id", sa.Integer(), nullable=True),
        sa.Column("release_source", sa.String(length=32), nullable=True),
        sa.Column("held_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("gross_amount >= 0", name="ck_escrow_gross_non_negative"),
        sa.CheckConstraint("platform_fee >= 0", name="ck_escrow_fee_non_negative"),
    )
    op.create_index("ix_escrows_status", "escrows", ["status"])
    op.create_index("ix_escrows_client", "escrows", ["client_id"])
    op.create_index("ix_escrows_freelancer", "escrows", ["freelancer_id"])
    op.create_table(
        "escrow_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("escrow_id", sa.Integer(), sa.ForeignKey("escrows.id"), nullable=False, index=True),
        sa.Column("kind", sa.String(length=50), nullable=False),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("data_json", sa.JSON(), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "milestones",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("escrow_id", sa.Integer(), sa.ForeignKey("escrows.id"), nullable=False, index=True),
        sa.Column("idx", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("percentage", sa.Numeric(5, 2), nullable=False),
        _money("amount"),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("submission_ref", sa.String(length=500), nullable=True),
        sa.Column("submission_notes", sa.Text(), nullable=True),
        sa.Column("client_notes", sa.Text(), nullable=True),
        sa.Column("revision_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_revisions", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("escrow_id", "idx", name="uq_milestone_idx"),
        sa.CheckConstraint("idx > 0", name="ck_milestone_positive_idx"),
        sa.CheckConstraint("percentage >= 0", name="ck_milestone_percentage_non_negative"),
        sa.CheckConstraint("revision_count >= 0", name="ck_milestone_revision_count_non_negative"),
    )
    op.create_table(
        "disputes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("escrow_id", sa.Integer(), sa.ForeignKey("escrows.id"), nullable=False),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=False),
        sa.Column("raised_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("counter_party_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reason", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("evidence", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("escrow_status_before", sa.String(length=32), nullable=False),
        sa.Column("resolution_decision", sa.String(length=32), nullable=True),
        _money("payment_adjustment", nullable=True),
        _money("client_refund_amount", nullable=True),
        sa.Column("resolution_summary", sa.Text(), nullable=True),
        sa.Column("resolved_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("response_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_disputes_escrow_status", "disputes", ["escrow_id", "status"])
    op.create_index("ix_disputes_raised_by", "disputes", ["raised_by_id"])
    op.create_index("ix_disputes_counter_party", "disputes", ["counter_party_id"])
    op.create_table(
        "payout_batches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reference", sa.String(length=40), nullable=False, unique=True),
        sa.Column("batch_date", sa.Date(), nullable=False),
        sa.Column("payout_count", sa.Integer(), nullable=False, server_default="0"),
        _money("total_amount"),
        _money("total_fees"),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "payout_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("batch_id", sa.Integer(), sa.ForeignKey("payout_batches.id"), nullable=True, index=True),
        sa.Column("escrow_id", sa.Integer(), sa.ForeignKey("escrows.id"), nullable=False),
        sa.Column("milestone_id", sa.Integer(), sa.ForeignKey("milestones.id"), nullable=True, index=True),
        sa.Column("dispute_id", sa.Integer(), sa.ForeignKey("disputes.id"), nullable=True),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("freelancer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=False),
        _money("amount"),
        _money("fee_amount"),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("reference", sa.String(length=80), nullable=True),
        sa.Column("provider_ref", sa.String(length=128), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_payout_item_positive_amount"),
    )
    op.create_index("ix_payout_items_status", "payout_items", ["status"])
    op.create_index("ix_payout_items_escrow_status", "payout_items", ["escrow_id", "status"])
    op.create_table(
        "freelancer_bank_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("bank_name", sa.String(length=100), nullable=False),
        sa.Column("account_holder_name", sa.String(length=200), nullable=False),
        sa.Column("account_number", sa.String(length=34), nullable=False),
        sa.Column("branch_code", sa.String(length=20), nullable=False),
        sa.Column("account_type", sa.String(length=32), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "uq_bank_accounts_primary_verified",
        "freelancer_bank_accounts",
        ["user_id"],
        unique=True,
        sqlite_where=sa.text("is_primary = 1 AND is_verified = 1"),
        postgresql_where=sa.text("is_primary AND is_verified"),
    )
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("kind", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("related_entity", sa.String(length=50), nullable=True),
        sa.Column("related_id", sa.String(length=64), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "is_read"])
    op.create_table(
        "webhook_deliveries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("correlation_id", sa.String(length=64), nullable=False),
        sa.Column("payment_status", sa.String(length=20), nullable=False),
        sa.Column("pf_payment_id", sa.String(length=64), nullable=True),
        sa.Column("outcome", sa.String(length=32), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("raw_json", sa.JSON(), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("replayed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_webhook_deliveries_correlation", "webhook_deliveries", ["correlation_id"])
    op.create_index("ix_webhook_deliveries_outcome", "webhook_deliveries", ["outcome"])
    op.create_table(
        "scheduler_locks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=64), nullable=False, unique=True),
        sa.Column("owner", sa.String(length=128), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("data_json", sa.JSON(), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity", "entity_id"])


def downgrade() -> None:
    for table in (
        "audit_logs",
        "scheduler_locks",
        "webhook_deliveries",
        "notifications",
        "freelancer_bank_accounts",
        "payout_items",
        "payout_batches",
        "disputes",
        "milestones",
        "escrow_events",
        "escrows",
        "provider_transactions",
        "applications",
        "jobs",
        "api_keys",
        "users",
    ):
        op.drop_table(table)
