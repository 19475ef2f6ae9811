import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from buildledger.common.enums import ApprovalStatus, LineItemCategory
from buildledger.db.base import BaseModel


class Expense(BaseModel):
    __tablename__ = "expenses"

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    payee_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("payees.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    category: Mapped[str] = mapped_column(
        String(30), nullable=False, default=LineItemCategory.OTHER.value
    )
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    approval_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApprovalStatus.PENDING.value
    )
    # Split expenses are counted only through their ExpenseSplit rows
    is_split: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class ExpenseSplit(BaseModel):
    __tablename__ = "expense_splits"

    expense_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("expenses.id"), nullable=False, index=True
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    split_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    split_percentage: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
