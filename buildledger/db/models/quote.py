import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from buildledger.common.enums import LineItemCategory, QuoteStatus
from buildledger.db.base import BaseModel

ZERO = Decimal("0.00")


class Quote(BaseModel):
    __tablename__ = "quotes"

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    estimate_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("estimates.id"), nullable=True, index=True
    )
    payee_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("payees.id"), nullable=True
    )
    quote_number: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=QuoteStatus.PENDING.value
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO, nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class QuoteLineItem(BaseModel):
    __tablename__ = "quote_line_items"

    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quotes.id"), nullable=False, index=True
    )
    estimate_line_item_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("estimate_line_items.id"), nullable=True, index=True
    )
    category: Mapped[str] = mapped_column(
        String(30), nullable=False, default=LineItemCategory.SUBCONTRACTORS.value
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=Decimal("1"), nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(Numeric(15, 4), default=ZERO, nullable=False)
    price_per_unit: Mapped[Decimal | None] = mapped_column(Numeric(15, 4), nullable=True)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO, nullable=False)
    total: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
