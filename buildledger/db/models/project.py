import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from buildledger.common.enums import ProjectStatus
from buildledger.db.base import BaseModel

ZERO = Decimal("0.00")


def _money() -> Mapped[Decimal]:
    return mapped_column(Numeric(15, 2), default=ZERO, nullable=False)


def _pct() -> Mapped[Decimal]:
    return mapped_column(Numeric(20, 2), default=ZERO, nullable=False)


class FinancialSnapshotMixin:
    """Cached financial snapshot. Written only by the recompute dispatcher."""

    contracted_amount: Mapped[Decimal] = _money()
    current_margin: Mapped[Decimal] = _money()
    margin_percentage: Mapped[Decimal] = _pct()
    projected_margin: Mapped[Decimal] = _money()
    original_margin: Mapped[Decimal] = _money()
    original_est_costs: Mapped[Decimal] = _money()
    adjusted_est_costs: Mapped[Decimal] = _money()
    total_expenses: Mapped[Decimal] = _money()
    total_accepted_quotes: Mapped[Decimal] = _money()
    change_order_revenue: Mapped[Decimal] = _money()
    change_order_cost: Mapped[Decimal] = _money()
    change_order_margin: Mapped[Decimal] = _money()
    contingency_amount: Mapped[Decimal] = _money()
    contingency_used: Mapped[Decimal] = _money()
    contingency_remaining: Mapped[Decimal] = _money()
    total_labor_cushion: Mapped[Decimal] = _money()
    max_gross_profit_potential: Mapped[Decimal] = _money()
    max_potential_margin_percent: Mapped[Decimal] = _pct()
    total_invoiced: Mapped[Decimal] = _money()
    actual_margin: Mapped[Decimal] = _money()
    has_approved_estimate: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    current_estimate_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    financials_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class Project(BaseModel, FinancialSnapshotMixin):
    __tablename__ = "projects"

    project_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    project_name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProjectStatus.ESTIMATING.value
    )
