"""seed default categories

Revision ID: 202610150905
Revises: 202610150900
Create Date: 2026-10-15 09:05:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "202610150905"
down_revision = "202610150900"
branch_labels = None
depends_on = None


DEFAULT_CATEGORIES = (
    ("Salary", "income", "#059669"),
    ("Bonus", "income", "#10B981"),
    ("Rent", "expense", "#1E3A8A"),
    ("Utilities", "expense", "#2563EB"),
    ("Groceries", "expense", "#F59E0B"),
    ("Dining", "expense", "#F97316"),
    ("Transport", "expense", "#0EA5E9"),
    ("Entertainment", "expense", "#8B5CF6"),
    ("Health", "expense", "#DC2626"),
    ("Travel", "expense", "#14B8A6"),
    ("Other", "expense", "#6B7280"),
)

categories = sa.table(
    "categories",
    sa.column("name", sa.Text()),
    sa.column("type", sa.String()),
    sa.column("color", sa.String()),
)


def upgrade() -> None:
    bind = op.get_bind()
    existing = {
        row[0] for row in bind.execute(sa.select(categories.c.name)).fetchall()
    }
    rows = [
        {"name": name, "type": type_, "color": color}
        for name, type_, color in DEFAULT_CATEGORIES
        if name not in existing
    ]
    if rows:
        op.bulk_insert(categories, rows)


def downgrade() -> None:
    op.execute(
        categories.delete().where(
            categories.c.name.in_([name for name, _, _ in DEFAULT_CATEGORIES])
        )
    )
