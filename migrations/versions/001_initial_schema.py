"""Create job lifecycle, payment, dispute, review, artisan, vault and gateway event tables.

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ENUM, JSONB

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JOB_STATUSES = (
    "pending", "assigned", "quoted", "inspection_requested", "inspection_paid",
    "price_agreed", "payment_escrowed", "in_progress", "completed", "confirmed",
    "disputed", "cancelled",
)


def upgrade() -> None:
    job_status = sa.Enum(*JOB_STATUSES, name="jobstatus")

    op.create_table(
        "jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("customer_id", sa.Uuid(), nullable=False),
        sa.Column("artisan_id", sa.Uuid(), nullable=True),
        sa.Column("category_id", sa.Uuid(), nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("address", sa.String(500), nullable=False, server_default=""),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("status", job_status, nullable=False, server_default="pending"),
        sa.Column("requires_inspection", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("inspection_fee", sa.BigInteger(), nullable=True),
        sa.Column("quoted_amount", sa.BigInteger(), nullable=True),
        sa.Column("final_amount", sa.BigInteger(), nullable=True),
        sa.Column("commission_percent", sa.Integer(), nullable=False, server_default="20"),
        sa.Column("assigned_by", sa.String(32), nullable=True),
        sa.Column("admin_assigner_id", sa.Uuid(), nullable=True),
        sa.Column("photo_before", sa.String(1024), nullable=True),
        sa.Column("photo_after", sa.String(1024), nullable=True),
        sa.Column("guarantee_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_jobs_customer_id", "jobs", ["customer_id"])
    op.create_index("ix_jobs_artisan_id", "jobs", ["artisan_id"])
    # Sweeper scans pending jobs by age.
    op.create_index("ix_jobs_status_created_at", "jobs", ["status", "created_at"])

    op.create_table(
        "job_status_history",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("job_id", sa.Uuid(), sa.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("old_status", ENUM(*JOB_STATUSES, name="jobstatus", create_type=False), nullable=True),
        sa.Column("new_status", ENUM(*JOB_STATUSES, name="jobstatus", create_type=False), nullable=False),
        sa.Column("changed_by", sa.Uuid(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_job_status_history_job_id", "job_status_history", ["job_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("job_id", sa.Uuid(), sa.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("customer_id", sa.Uuid(), nullable=False),
        sa.Column("artisan_id", sa.Uuid(), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("commission_amount", sa.BigInteger(), nullable=False),
        sa.Column("artisan_amount", sa.BigInteger(), nullable=False),
        sa.Column(
            "payment_type",
            sa.Enum("inspection_fee", "job_payment", name="paymenttype"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("pending", "paid", "held", "released", "refunded", name="paymentstatus"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("gateway_reference", sa.String(100), nullable=False, unique=True),
        sa.Column("gateway_access_code", sa.String(100), nullable=True),
        sa.Column("subaccount_code", sa.String(100), nullable=True),
        sa.Column("transfer_code", sa.String(100), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
        sa.CheckConstraint("commission_amount + artisan_amount = amount", name="ck_payments_split_exact"),
    )
    op.create_index("ix_payments_job_id", "payments", ["job_id"])
    # At most one held job payment per job; the service also checks under lock.
    op.create_index(
        "uq_payments_one_held_job_payment",
        "payments",
        ["job_id"],
        unique=True,
        postgresql_where=sa.text("status = 'held' AND payment_type = 'job_payment'"),
    )

    op.create_table(
        "disputes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("job_id", sa.Uuid(), sa.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("customer_id", sa.Uuid(), nullable=False),
        sa.Column("artisan_id", sa.Uuid(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("open", "resolved", "closed", name="disputestatus"),
            nullable=False,
            server_default="open",
        ),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column("resolved_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "reviews",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("job_id", sa.Uuid(), sa.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("customer_id", sa.Uuid(), nullable=False),
        sa.Column("artisan_id", sa.Uuid(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating"),
    )
    op.create_index("ix_reviews_artisan_id", "reviews", ["artisan_id"])

    op.create_table(
        "artisan_profiles",
        sa.Column("user_id", sa.Uuid(), primary_key=True),
        sa.Column("category_id", sa.Uuid(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("service_radius_km", sa.Float(), nullable=False, server_default="10"),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("total_jobs", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_jobs", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cancelled_jobs", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rating_avg", sa.Numeric(3, 2), nullable=False, server_default="0"),
        sa.Column("payout_subaccount_code", sa.String(100), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_artisan_profiles_category_id", "artisan_profiles", ["category_id"])

    op.create_table(
        "artisan_violations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("artisan_id", sa.Uuid(), nullable=False),
        sa.Column(
            "violation_type",
            sa.Enum("bypass_attempt", "no_show", "poor_quality", "other", name="violationtype"),
            nullable=False,
        ),
        sa.Column("reported_by", sa.Uuid(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_artisan_violations_artisan_id", "artisan_violations", ["artisan_id"])

    op.create_table(
        "identity_records",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("subject_name", sa.String(200), nullable=False),
        sa.Column("masked_value", sa.String(64), nullable=False),
        sa.Column("ciphertext", sa.LargeBinary(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "reveal_audit_log",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("admin_id", sa.Uuid(), nullable=False),
        sa.Column(
            "record_id", sa.Uuid(),
            sa.ForeignKey("identity_records.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("justification", sa.Text(), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=False, server_default="unknown"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_reveal_audit_log_admin_id", "reveal_audit_log", ["admin_id"])

    op.create_table(
        "gateway_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("reference", sa.String(100), nullable=True),
        sa.Column("payload", JSONB, nullable=False),
        sa.Column(
            "status",
            sa.Enum("received", "processed", "ignored", "failed", name="gatewayeventstatus"),
            nullable=False,
            server_default="received",
        ),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_gateway_events_reference", "gateway_events", ["reference"])


def downgrade() -> None:
    op.drop_table("gateway_events")
    op.drop_table("reveal_audit_log")
    op.drop_table("identity_records")
    op.drop_table("artisan_violations")
    op.drop_table("artisan_profiles")
    op.drop_table("reviews")
    op.drop_table("disputes")
    op.drop_table("payments")
    op.drop_table("job_status_history")
    op.drop_table("jobs")
    for enum_name in (
        "gatewayeventstatus", "violationtype", "disputestatus",
        "paymentstatus", "paymenttype", "jobstatus",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
