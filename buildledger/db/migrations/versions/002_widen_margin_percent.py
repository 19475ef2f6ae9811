"""Widen margin percentage columns

A tiny contract value against large costs produces percentages far outside
+/-9,999,999.99, which overflowed Numeric(9, 2) on recompute.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

COLUMNS = [
    ("projects", "margin_percentage"),
    ("projects", "max_potential_margin_percent"),
    ("estimates", "max_potential_margin_percent"),
]


def upgrade() -> None:
    for table, column in COLUMNS:
        op.alter_column(
            table, column, type_=sa.Numeric(20, 2), existing_type=sa.Numeric(9, 2), existing_nullable=False
        )


def downgrade() -> None:
    for table, column in COLUMNS:
        op.alter_column(
            table, column, type_=sa.Numeric(9, 2), existing_type=sa.Numeric(20, 2), existing_nullable=False
        )
