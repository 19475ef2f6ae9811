"""Initial schema - ledger tables and project financial snapshot

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _money(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.Numeric(15, 2), nullable=True)
    return sa.Column(name, sa.Numeric(15, 2), nullable=False, server_default=sa.text("0"))


def _fk(name: str, target: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name, postgresql.UUID(as_uuid=True), sa.ForeignKey(target), nullable=nullable, index=True
    )


SNAPSHOT_MONEY_COLUMNS = [
    "contracted_amount",
    "current_margin",
    "projected_margin",
    "original_margin",
    "original_est_costs",
    "adjusted_est_costs",
    "total_expenses",
    "total_accepted_quotes",
    "change_order_revenue",
    "change_order_cost",
    "change_order_margin",
    "contingency_amount",
    "contingency_used",
    "contingency_remaining",
    "total_labor_cushion",
    "max_gross_profit_potential",
    "total_invoiced",
    "actual_margin",
]


def upgrade() -> None:
    # Projects (identity + cached financial snapshot)
    op.create_table(
        "projects",
        *_base_columns(),
        sa.Column("project_number", sa.String(50), unique=True, nullable=False),
        sa.Column("project_name", sa.String(255), nullable=False),
        sa.Column("client_name", sa.String(255), nullable=True),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="estimating"),
        *[_money(name) for name in SNAPSHOT_MONEY_COLUMNS],
        sa.Column("margin_percentage", sa.Numeric(9, 2), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "max_potential_margin_percent", sa.Numeric(9, 2), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("has_approved_estimate", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("current_estimate_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("financials_updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # Payees
    op.create_table(
        "payees",
        *_base_columns(),
        sa.Column("payee_name", sa.String(255), nullable=False, index=True),
        sa.Column("payee_type", sa.String(20), nullable=False, server_default="vendor"),
        sa.Column("is_internal", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
    )

    # Estimates
    op.create_table(
        "estimates",
        *_base_columns(),
        _fk("project_id", "projects.id"),
        sa.Column(
            "parent_estimate_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("estimates.id"),
            nullable=True,
        ),
        sa.Column("estimate_number", sa.String(50), nullable=False),
        sa.Column("version_number", sa.Integer, nullable=False, server_default=sa.text("1")),
        sa.Column("is_current_version", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        _money("total_amount"),
        _money("total_cost"),
        sa.Column("contingency_percent", sa.Numeric(5, 2), nullable=False, server_default=sa.text("0")),
        _money("contingency_amount"),
        _money("contingency_used"),
        _money("total_labor_cushion"),
        _money("max_gross_profit_potential"),
        sa.Column(
            "max_potential_margin_percent", sa.Numeric(9, 2), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("notes", sa.Text, nullable=True),
    )
    op.create_index(
        "uq_estimates_project_current_version",
        "estimates",
        ["project_id"],
        unique=True,
        postgresql_where=sa.text("is_current_version AND NOT is_deleted"),
    )

    op.create_table(
        "estimate_line_items",
        *_base_columns(),
        _fk("estimate_id", "estimates.id"),
        sa.Column("payee_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("payees.id"), nullable=True),
        sa.Column("category", sa.String(30), nullable=False, server_default="other"),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("quantity", sa.Numeric(12, 4), nullable=False, server_default=sa.text("1")),
        sa.Column("unit", sa.String(20), nullable=True),
        sa.Column("cost_per_unit", sa.Numeric(15, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("price_per_unit", sa.Numeric(15, 4), nullable=False, server_default=sa.text("0")),
        _money("total_cost"),
        _money("total"),
        _money("total_markup"),
        sa.Column("labor_hours", sa.Numeric(10, 2), nullable=True),
        sa.Column("billing_rate_per_hour", sa.Numeric(10, 2), nullable=True),
        sa.Column("actual_cost_rate_per_hour", sa.Numeric(10, 2), nullable=True),
        _money("labor_cushion_amount"),
    )

    # Quotes
    op.create_table(
        "quotes",
        *_base_columns(),
        _fk("project_id", "projects.id"),
        _fk("estimate_id", "estimates.id", nullable=True),
        sa.Column("payee_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("payees.id"), nullable=True),
        sa.Column("quote_number", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        _money("total_amount"),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
    )

    op.create_table(
        "quote_line_items",
        *_base_columns(),
        _fk("quote_id", "quotes.id"),
        _fk("estimate_line_item_id", "estimate_line_items.id", nullable=True),
        sa.Column("category", sa.String(30), nullable=False, server_default="subcontractors"),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 4), nullable=False, server_default=sa.text("1")),
        sa.Column("cost_per_unit", sa.Numeric(15, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("price_per_unit", sa.Numeric(15, 4), nullable=True),
        _money("total_cost"),
        _money("total", nullable=True),
    )

    # Change orders
    op.create_table(
        "change_orders",
        *_base_columns(),
        _fk("project_id", "projects.id"),
        sa.Column("change_order_number", sa.String(50), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        _money("client_amount"),
        _money("cost_impact"),
        _money("margin_impact"),
        sa.Column("includes_contingency", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "change_order_line_items",
        *_base_columns(),
        _fk("change_order_id", "change_orders.id"),
        sa.Column("category", sa.String(30), nullable=False, server_default="other"),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 4), nullable=False, server_default=sa.text("1")),
        sa.Column("cost_per_unit", sa.Numeric(15, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("price_per_unit", sa.Numeric(15, 4), nullable=False, server_default=sa.text("0")),
        _money("total_cost"),
        _money("total"),
    )

    # Expenses
    op.create_table(
        "expenses",
        *_base_columns(),
        _fk("project_id", "projects.id"),
        sa.Column("payee_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("payees.id"), nullable=True),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("category", sa.String(30), nullable=False, server_default="other"),
        sa.Column("expense_date", sa.Date, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("approval_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("is_split", sa.Boolean, nullable=False, server_default=sa.text("false")),
    )

    op.create_table(
        "expense_splits",
        *_base_columns(),
        _fk("expense_id", "expenses.id"),
        _fk("project_id", "projects.id"),
        sa.Column("split_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("split_percentage", sa.Numeric(7, 4), nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
    )

    # Revenues (invoices)
    op.create_table(
        "project_revenues",
        *_base_columns(),
        _fk("project_id", "projects.id"),
        sa.Column("invoice_number", sa.String(50), nullable=True),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("invoice_date", sa.Date, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_split", sa.Boolean, nullable=False, server_default=sa.text("false")),
    )

    op.create_table(
        "revenue_splits",
        *_base_columns(),
        _fk("revenue_id", "project_revenues.id"),
        _fk("project_id", "projects.id"),
        sa.Column("split_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("split_percentage", sa.Numeric(7, 4), nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
    )


def downgrade() -> None:
    op.drop_table("revenue_splits")
    op.drop_table("project_revenues")
    op.drop_table("expense_splits")
    op.drop_table("expenses")
    op.drop_table("change_order_line_items")
    op.drop_table("change_orders")
    op.drop_table("quote_line_items")
    op.drop_table("quotes")
    op.drop_table("estimate_line_items")
    op.drop_index("uq_estimates_project_current_version", table_name="estimates")
    op.drop_table("estimates")
    op.drop_table("payees")
    op.drop_table("projects")
