import uuid
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from buildledger.common.enums import EstimateStatus, LineItemCategory
from buildledger.db.base import BaseModel

ZERO = Decimal("0.00")


class Estimate(BaseModel):
    __tablename__ = "estimates"
    __table_args__ = (
        # At most one live current version per project
        Index(
            "uq_estimates_project_current_version",
            "project_id",
            unique=True,
            postgresql_where=text("is_current_version AND NOT is_deleted"),
            sqlite_where=text("is_current_version = 1 AND is_deleted = 0"),
        ),
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    parent_estimate_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("estimates.id"), nullable=True
    )
    estimate_number: Mapped[str] = mapped_column(String(50), nullable=False)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_current_version: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EstimateStatus.DRAFT.value
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO, nullable=False)
    contingency_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), default=ZERO, nullable=False
    )
    contingency_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=ZERO, nullable=False
    )
    contingency_used: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO, nullable=False)
    total_labor_cushion: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=ZERO, nullable=False
    )
    max_gross_profit_potential: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=ZERO, nullable=False
    )
    max_potential_margin_percent: Mapped[Decimal] = mapped_column(
        Numeric(20, 2), default=ZERO, nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class EstimateLineItem(BaseModel):
    __tablename__ = "estimate_line_items"

    estimate_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("estimates.id"), nullable=False, index=True
    )
    payee_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("payees.id"), nullable=True
    )
    category: Mapped[str] = mapped_column(
        String(30), nullable=False, default=LineItemCategory.OTHER.value
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=Decimal("1"), nullable=False)
    unit: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cost_per_unit: Mapped[Decimal] = mapped_column(Numeric(15, 4), default=ZERO, nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(15, 4), default=ZERO, nullable=False)

    # Derived on write
    total_cost: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO, nullable=False)
    total_markup: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO, nullable=False)

    # labor_internal only
    labor_hours: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    billing_rate_per_hour: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    actual_cost_rate_per_hour: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2), nullable=True
    )
    labor_cushion_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=ZERO, nullable=False
    )
