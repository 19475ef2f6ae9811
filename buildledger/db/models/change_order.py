import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from buildledger.common.enums import ChangeOrderStatus, LineItemCategory
from buildledger.db.base import BaseModel

ZERO = Decimal("0.00")


class ChangeOrder(BaseModel):
    __tablename__ = "change_orders"

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    change_order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ChangeOrderStatus.DRAFT.value
    )
    client_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO, nullable=False)
    cost_impact: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO, nullable=False)
    margin_impact: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO, nullable=False)
    includes_contingency: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ChangeOrderLineItem(BaseModel):
    __tablename__ = "change_order_line_items"

    change_order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("change_orders.id"), nullable=False, index=True
    )
    category: Mapped[str] = mapped_column(
        String(30), nullable=False, default=LineItemCategory.OTHER.value
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=Decimal("1"), nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(Numeric(15, 4), default=ZERO, nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(15, 4), default=ZERO, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO, nullable=False)
