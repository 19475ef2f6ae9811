"""Derives the financial snapshot from ledger totals and resolved line costs.

Everything here is a pure function of its inputs: the previous snapshot is never
consulted, so running it twice over the same ledger yields identical results.

    contracted_amount     = estimate_total + change_order_revenue
    current_margin        = contracted_amount - expenses
    margin_percentage     = current_margin / contracted_amount * 100
    original_est_costs    = sum of estimate-only line costs
    adjusted_est_costs    = sum of resolved line costs + change_order_cost
    original_margin       = estimate_total - original_est_costs
    projected_margin      = contracted_amount - adjusted_est_costs
    contingency_used      = entered contingency_used
                            + contingency-funded change order cost
    contingency_remaining = max(contingency_amount - contingency_used, 0)

The labor cushion view (``total_labor_cushion``, ``max_gross_profit_potential``,
``max_potential_margin_percent``) is layered on top and never feeds back into
the billed-amount margins.
"""

from decimal import Decimal

from buildledger.common.enums import LineItemCategory
from buildledger.common.money import ZERO, dsum, percent, to_money
from buildledger.core.financials.schemas import (
    EstimateBasis,
    EstimateLineInput,
    FinancialSnapshot,
    LaborView,
    ResolvedLineCost,
    Totals,
)


def labor_cushion(
    hours: Decimal | None,
    billing_rate: Decimal | None,
    actual_cost_rate: Decimal | None,
) -> Decimal:
    """``hours * (billing_rate - actual_cost_rate)``, only when the spread is positive."""
    if hours is None or billing_rate is None or actual_cost_rate is None:
        return ZERO
    spread = billing_rate - actual_cost_rate
    if spread <= 0 or hours <= 0:
        return ZERO
    return hours * spread


def line_labor_cushion(line: EstimateLineInput) -> Decimal:
    if line.category != LineItemCategory.LABOR_INTERNAL.value:
        return ZERO
    hours = line.labor_hours if line.labor_hours is not None else line.quantity
    billing = (
        line.billing_rate_per_hour
        if line.billing_rate_per_hour is not None
        else line.cost_per_unit
    )
    return labor_cushion(hours, billing, line.actual_cost_rate_per_hour)


def labor_view(lines: list[EstimateLineInput]) -> LaborView:
    """Max-profit view of an estimate: standard markup plus the hidden labor cushion.

    The margin percentage is taken against true internal cost, i.e. billed cost
    with the cushion subtracted back out.
    """
    cushion = dsum(line_labor_cushion(line) for line in lines)
    revenue = dsum(line.price for line in lines)
    billed_cost = dsum(line.estimate_cost for line in lines)
    markup = revenue - billed_cost
    true_cost = billed_cost - cushion

    return LaborView(
        total_labor_cushion=to_money(cushion),
        standard_markup=to_money(markup),
        max_gross_profit_potential=to_money(markup + cushion),
        max_potential_margin_percent=percent(revenue - true_cost, revenue),
    )


def neutral_snapshot(totals: Totals) -> FinancialSnapshot:
    """Snapshot for a project with no approved current estimate.

    Estimate-driven fields stay zero; plain ledger sums are still reported.
    """
    return FinancialSnapshot(
        total_expenses=to_money(totals.expenses),
        total_accepted_quotes=to_money(totals.accepted_quotes),
        change_order_revenue=to_money(totals.change_order_revenue),
        change_order_cost=to_money(totals.change_order_cost),
        change_order_margin=to_money(totals.change_order_revenue - totals.change_order_cost),
        total_invoiced=to_money(totals.invoiced),
        actual_margin=to_money(totals.invoiced - totals.expenses),
        has_approved_estimate=False,
        current_estimate_id=None,
    )


def calculate_snapshot(
    totals: Totals,
    line_costs: list[ResolvedLineCost],
    estimate: EstimateBasis | None,
) -> FinancialSnapshot:
    if estimate is None:
        return neutral_snapshot(totals)

    if line_costs:
        original_costs = dsum(c.original_cost for c in line_costs)
        resolved_costs = dsum(c.adjusted_cost for c in line_costs)
    else:
        # Estimates entered without line items carry only their header cost
        original_costs = totals.estimate_cost
        resolved_costs = totals.estimate_cost

    contracted = totals.estimate_total + totals.change_order_revenue
    current_margin = contracted - totals.expenses
    adjusted_costs = resolved_costs + totals.change_order_cost

    contingency_used = estimate.contingency_used + totals.contingency_change_order_cost
    contingency_remaining = max(estimate.contingency_amount - contingency_used, ZERO)

    labor = labor_view(estimate.lines)

    return FinancialSnapshot(
        contracted_amount=to_money(contracted),
        current_margin=to_money(current_margin),
        margin_percentage=percent(to_money(current_margin), to_money(contracted)),
        projected_margin=to_money(contracted - adjusted_costs),
        original_margin=to_money(totals.estimate_total - original_costs),
        original_est_costs=to_money(original_costs),
        adjusted_est_costs=to_money(adjusted_costs),
        total_expenses=to_money(totals.expenses),
        total_accepted_quotes=to_money(totals.accepted_quotes),
        change_order_revenue=to_money(totals.change_order_revenue),
        change_order_cost=to_money(totals.change_order_cost),
        change_order_margin=to_money(totals.change_order_revenue - totals.change_order_cost),
        contingency_amount=to_money(estimate.contingency_amount),
        contingency_used=to_money(contingency_used),
        contingency_remaining=to_money(contingency_remaining),
        total_labor_cushion=labor.total_labor_cushion,
        max_gross_profit_potential=labor.max_gross_profit_potential,
        max_potential_margin_percent=labor.max_potential_margin_percent,
        total_invoiced=to_money(totals.invoiced),
        actual_margin=to_money(totals.invoiced - totals.expenses),
        has_approved_estimate=True,
        current_estimate_id=estimate.estimate_id,
    )
