import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from buildledger.common.money import ZERO


class EstimateLineInput(BaseModel):
    """The cost-relevant view of one estimate line item."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    category: str
    quantity: Decimal
    cost_per_unit: Decimal
    price_per_unit: Decimal
    labor_hours: Decimal | None = None
    billing_rate_per_hour: Decimal | None = None
    actual_cost_rate_per_hour: Decimal | None = None

    @property
    def estimate_cost(self) -> Decimal:
        return self.quantity * self.cost_per_unit

    @property
    def price(self) -> Decimal:
        return self.quantity * self.price_per_unit


class AcceptedQuoteLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    quote_line_item_id: uuid.UUID
    quote_id: uuid.UUID
    estimate_line_item_id: uuid.UUID
    cost: Decimal
    accepted_at: datetime | None = None


class ResolvedLineCost(BaseModel):
    estimate_line_item_id: uuid.UUID
    category: str
    original_cost: Decimal
    adjusted_cost: Decimal
    source: str  # "estimate" or "quote"
    quote_line_item_id: uuid.UUID | None = None


class EstimateBasis(BaseModel):
    """The current approved estimate, as the calculator needs it."""

    estimate_id: uuid.UUID
    total_amount: Decimal = ZERO
    total_cost: Decimal = ZERO
    contingency_amount: Decimal = ZERO
    contingency_used: Decimal = ZERO
    lines: list[EstimateLineInput] = []


class Totals(BaseModel):
    expenses: Decimal = ZERO
    accepted_quotes: Decimal = ZERO
    change_order_revenue: Decimal = ZERO
    change_order_cost: Decimal = ZERO
    contingency_change_order_cost: Decimal = ZERO
    estimate_total: Decimal = ZERO
    estimate_cost: Decimal = ZERO
    invoiced: Decimal = ZERO


class LaborView(BaseModel):
    total_labor_cushion: Decimal = ZERO
    standard_markup: Decimal = ZERO
    max_gross_profit_potential: Decimal = ZERO
    max_potential_margin_percent: Decimal = ZERO


class FinancialSnapshot(BaseModel):
    """Materialized per-project financial state. Field names match the project columns."""

    model_config = ConfigDict(frozen=True)

    contracted_amount: Decimal = ZERO
    current_margin: Decimal = ZERO
    margin_percentage: Decimal = ZERO
    projected_margin: Decimal = ZERO
    original_margin: Decimal = ZERO
    original_est_costs: Decimal = ZERO
    adjusted_est_costs: Decimal = ZERO
    total_expenses: Decimal = ZERO
    total_accepted_quotes: Decimal = ZERO
    change_order_revenue: Decimal = ZERO
    change_order_cost: Decimal = ZERO
    change_order_margin: Decimal = ZERO
    contingency_amount: Decimal = ZERO
    contingency_used: Decimal = ZERO
    contingency_remaining: Decimal = ZERO
    total_labor_cushion: Decimal = ZERO
    max_gross_profit_potential: Decimal = ZERO
    max_potential_margin_percent: Decimal = ZERO
    total_invoiced: Decimal = ZERO
    actual_margin: Decimal = ZERO
    has_approved_estimate: bool = False
    current_estimate_id: uuid.UUID | None = None


SNAPSHOT_FIELDS = tuple(FinancialSnapshot.model_fields)
