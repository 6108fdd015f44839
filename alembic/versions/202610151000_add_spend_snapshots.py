"""add published monthly spend snapshot tables

Revision ID: 202610151000
Revises: 202610150910
Create Date: 2026-10-15 10:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "202610151000"
down_revision = "202610150910"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "spend_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("refreshed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("bucket_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("source_rows", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "monthly_spend",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "snapshot_id",
            sa.Integer(),
            sa.ForeignKey("spend_snapshots.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("month", sa.Date(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("category_name", sa.Text()),
        sa.Column("currency", sa.Text(), nullable=False),
        sa.Column("spend", sa.Numeric(14, 2), nullable=False),
        sa.UniqueConstraint(
            "snapshot_id",
            "user_id",
            "month",
            "category_id",
            "currency",
            name="uq_monthly_spend_bucket",
        ),
        sa.CheckConstraint("spend >= 0", name="ck_monthly_spend_non_negative"),
    )
    op.create_index(
        "ix_monthly_spend_snapshot_user_month",
        "monthly_spend",
        ["snapshot_id", "user_id", "month"],
    )


def downgrade() -> None:
    op.drop_index("ix_monthly_spend_snapshot_user_month", table_name="monthly_spend")
    op.drop_table("monthly_spend")
    op.drop_table("spend_snapshots")
