import uuid
from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from buildledger.common.enums import ApprovalStatus, LineItemCategory, PayeeType, ProjectStatus


# ---------- Projects / payees ----------


class ProjectCreate(BaseModel):
    project_number: str
    project_name: str
    client_name: str | None = None
    address: str | None = None


class ProjectUpdate(BaseModel):
    project_name: str | None = None
    client_name: str | None = None
    address: str | None = None
    status: ProjectStatus | None = None


class PayeeCreate(BaseModel):
    payee_name: str
    payee_type: PayeeType = PayeeType.VENDOR
    is_internal: bool = False
    hourly_rate: Decimal | None = Field(default=None, ge=0)
    email: str | None = None


# ---------- Estimates ----------


class EstimateLineItemIn(BaseModel):
    category: LineItemCategory = LineItemCategory.OTHER
    description: str
    quantity: Decimal = Decimal("1")
    unit: str | None = None
    cost_per_unit: Decimal = Decimal("0")
    price_per_unit: Decimal = Decimal("0")
    payee_id: uuid.UUID | None = None
    labor_hours: Decimal | None = Field(default=None, ge=0)
    billing_rate_per_hour: Decimal | None = Field(default=None, ge=0)
    actual_cost_rate_per_hour: Decimal | None = Field(default=None, ge=0)
    sort_order: int = 0


class EstimateLineItemUpdate(BaseModel):
    category: LineItemCategory | None = None
    description: str | None = None
    quantity: Decimal | None = None
    unit: str | None = None
    cost_per_unit: Decimal | None = None
    price_per_unit: Decimal | None = None
    payee_id: uuid.UUID | None = None
    labor_hours: Decimal | None = Field(default=None, ge=0)
    billing_rate_per_hour: Decimal | None = Field(default=None, ge=0)
    actual_cost_rate_per_hour: Decimal | None = Field(default=None, ge=0)
    sort_order: int | None = None


class EstimateCreate(BaseModel):
    estimate_number: str | None = None
    # None: becomes current only when the project has no current version yet
    is_current_version: bool | None = None
    total_amount: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    contingency_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    contingency_amount: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None
    line_items: list[EstimateLineItemIn] = []


class EstimateUpdate(BaseModel):
    action: Literal["send", "approve", "reject", "expire"] | None = None
    is_current_version: bool | None = None
    contingency_percent: Decimal | None = Field(default=None, ge=0, le=100)
    contingency_used: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None


# ---------- Quotes ----------


class QuoteLineItemIn(BaseModel):
    estimate_line_item_id: uuid.UUID | None = None
    category: LineItemCategory = LineItemCategory.SUBCONTRACTORS
    description: str
    quantity: Decimal = Decimal("1")
    cost_per_unit: Decimal = Decimal("0")
    price_per_unit: Decimal | None = None


class QuoteCreate(BaseModel):
    quote_number: str | None = None
    estimate_id: uuid.UUID | None = None
    payee_id: uuid.UUID | None = None
    total_amount: Decimal = Decimal("0")
    notes: str | None = None
    line_items: list[QuoteLineItemIn] = []


class QuoteUpdate(BaseModel):
    action: Literal["accept", "reject", "expire"]


# ---------- Change orders ----------


class ChangeOrderLineItemIn(BaseModel):
    category: LineItemCategory = LineItemCategory.OTHER
    description: str
    quantity: Decimal = Decimal("1")
    cost_per_unit: Decimal = Decimal("0")
    price_per_unit: Decimal = Decimal("0")


class ChangeOrderCreate(BaseModel):
    change_order_number: str | None = None
    description: str
    reason: str | None = None
    client_amount: Decimal = Decimal("0")
    cost_impact: Decimal = Decimal("0")
    includes_contingency: bool = False
    line_items: list[ChangeOrderLineItemIn] = []


class ChangeOrderUpdate(BaseModel):
    action: Literal["submit", "approve", "reject"] | None = None
    description: str | None = None
    client_amount: Decimal | None = None
    cost_impact: Decimal | None = None
    includes_contingency: bool | None = None


# ---------- Expenses / revenues ----------


class SplitIn(BaseModel):
    project_id: uuid.UUID
    split_amount: Decimal | None = Field(default=None, gt=0)
    split_percentage: Decimal | None = Field(default=None, gt=0, le=100)
    notes: str | None = None

    @model_validator(mode="after")
    def _amount_or_percentage(self) -> "SplitIn":
        if self.split_amount is None and self.split_percentage is None:
            raise ValueError("split_amount or split_percentage is required")
        return self


class ExpenseCreate(BaseModel):
    project_id: uuid.UUID
    payee_id: uuid.UUID | None = None
    amount: Decimal
    category: LineItemCategory = LineItemCategory.OTHER
    expense_date: date
    description: str | None = None
    approval_status: ApprovalStatus = ApprovalStatus.PENDING


class ExpenseUpdate(BaseModel):
    project_id: uuid.UUID | None = None
    payee_id: uuid.UUID | None = None
    amount: Decimal | None = None
    category: LineItemCategory | None = None
    expense_date: date | None = None
    description: str | None = None
    approval_status: ApprovalStatus | None = None


class RevenueCreate(BaseModel):
    project_id: uuid.UUID
    invoice_number: str | None = None
    amount: Decimal
    invoice_date: date
    description: str | None = None


class RevenueUpdate(BaseModel):
    project_id: uuid.UUID | None = None
    invoice_number: str | None = None
    amount: Decimal | None = None
    invoice_date: date | None = None
    description: str | None = None


class SplitSet(BaseModel):
    splits: list[SplitIn]
