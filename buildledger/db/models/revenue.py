import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from buildledger.db.base import BaseModel


class ProjectRevenue(BaseModel):
    __tablename__ = "project_revenues"

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    invoice_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_split: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class RevenueSplit(BaseModel):
    __tablename__ = "revenue_splits"

    revenue_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("project_revenues.id"), nullable=False, index=True
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    split_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    split_percentage: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
