"""budget period/active flags, goal due date, lookup indexes

Revision ID: 202610150910
Revises: 202610150905
Create Date: 2026-10-15 09:10:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "202610150910"
down_revision = "202610150905"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("budgets") as batch_op:
        batch_op.add_column(sa.Column("period", sa.Text(), server_default="monthly"))
        batch_op.add_column(sa.Column("active", sa.Boolean(), server_default=sa.true()))
    with op.batch_alter_table("goals") as batch_op:
        batch_op.add_column(sa.Column("due_date", sa.Date()))

    op.create_index("idx_transactions_date", "transactions", ["date"])
    op.create_index("idx_budgets_user_month", "budgets", ["user_id", "month"])


def downgrade() -> None:
    op.drop_index("idx_budgets_user_month", table_name="budgets")
    op.drop_index("idx_transactions_date", table_name="transactions")
    with op.batch_alter_table("goals") as batch_op:
        batch_op.drop_column("due_date")
    with op.batch_alter_table("budgets") as batch_op:
        batch_op.drop_column("active")
        batch_op.drop_column("period")
