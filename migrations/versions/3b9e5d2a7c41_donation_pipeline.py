"""donation pipeline schema

Revision ID: 3b9e5d2a7c41
Revises:
Create Date: 2026-10-19 10:12:05.412871
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "3b9e5d2a7c41"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # --- donation_requests ---
    op.create_table(
        "donation_requests",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("donor_id", sa.String(length=64), nullable=False),
        sa.Column("fundraiser_id", sa.String(length=64), nullable=False),
        sa.Column("service_id", sa.String(length=64), nullable=False),
        sa.Column("platform", sa.String(length=20), nullable=False),
        sa.Column("organization_id", sa.String(length=64), nullable=False),
        sa.Column("organization_name", sa.String(length=255), nullable=True),
        sa.Column("donation_amount", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("donation_url", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("external_donation_id", sa.String(length=64), nullable=True),
        sa.Column("timeout_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("resolution", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("donation_amount > 0", name="ck_donation_requests_amount_positive"),
        sa.UniqueConstraint("reference_id", name="uq_donation_requests_reference_id"),
    )
    with op.batch_alter_table("donation_requests") as batch_op:
        batch_op.create_index("ix_donation_requests_status_reference", ["status", "reference_id"], unique=False)
        batch_op.create_index("ix_donation_requests_donor_status", ["donor_id", "status"], unique=False)
        batch_op.create_index(batch_op.f("ix_donation_requests_status"), ["status"], unique=False)
        batch_op.create_index(
            batch_op.f("ix_donation_requests_external_donation_id"), ["external_donation_id"], unique=False
        )
        batch_op.create_index(batch_op.f("ix_donation_requests_fundraiser_id"), ["fundraiser_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_donation_requests_service_id"), ["service_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_donation_requests_created_at"), ["created_at"], unique=False)

    # --- charity_cache ---
    op.create_table(
        "charity_cache",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("platform", sa.String(length=20), nullable=False),
        sa.Column("organization_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=120), nullable=True),
        sa.Column("logo_url", sa.String(length=500), nullable=True),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("platform", "organization_id", name="uq_charity_cache_platform_org"),
    )
    with op.batch_alter_table("charity_cache") as batch_op:
        batch_op.create_index(batch_op.f("ix_charity_cache_platform"), ["platform"], unique=False)
        batch_op.create_index(batch_op.f("ix_charity_cache_slug"), ["slug"], unique=False)

    # --- reconciliation_runs ---
    op.create_table(
        "reconciliation_runs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("trigger", sa.String(length=20), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.Column("checked", sa.Integer(), nullable=False),
        sa.Column("succeeded", sa.Integer(), nullable=False),
        sa.Column("reviewed", sa.Integer(), nullable=False),
        sa.Column("timed_out", sa.Integer(), nullable=False),
        sa.Column("unchanged", sa.Integer(), nullable=False),
        sa.Column("skipped", sa.Integer(), nullable=False),
        sa.Column("errors", sa.Integer(), nullable=False),
        sa.Column("lost_races", sa.Integer(), nullable=False),
    )
    with op.batch_alter_table("reconciliation_runs") as batch_op:
        batch_op.create_index("ix_reconciliation_runs_started", ["started_at"], unique=False)


def downgrade():
    with op.batch_alter_table("reconciliation_runs") as batch_op:
        batch_op.drop_index("ix_reconciliation_runs_started")
    op.drop_table("reconciliation_runs")

    with op.batch_alter_table("charity_cache") as batch_op:
        batch_op.drop_index(batch_op.f("ix_charity_cache_slug"))
        batch_op.drop_index(batch_op.f("ix_charity_cache_platform"))
    op.drop_table("charity_cache")

    with op.batch_alter_table("donation_requests") as batch_op:
        batch_op.drop_index(batch_op.f("ix_donation_requests_created_at"))
        batch_op.drop_index(batch_op.f("ix_donation_requests_service_id"))
        batch_op.drop_index(batch_op.f("ix_donation_requests_fundraiser_id"))
        batch_op.drop_index(batch_op.f("ix_donation_requests_external_donation_id"))
        batch_op.drop_index(batch_op.f("ix_donation_requests_status"))
        batch_op.drop_index("ix_donation_requests_donor_status")
        batch_op.drop_index("ix_donation_requests_status_reference")
    op.drop_table("donation_requests")
