import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from buildledger.common.enums import LineItemCategory
from buildledger.core.financials.cost_resolver import (
    pick_accepted_line,
    resolve_costs,
    resolve_line_cost,
)
from buildledger.core.financials.schemas import AcceptedQuoteLine, EstimateLineInput

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def _line(category: LineItemCategory, cost="20000", quantity="1") -> EstimateLineInput:
    return EstimateLineInput(
        id=uuid.uuid4(),
        category=category.value,
        quantity=Decimal(quantity),
        cost_per_unit=Decimal(cost),
        price_per_unit=Decimal(cost) * Decimal("1.3"),
    )


def _accepted(line: EstimateLineInput, cost: str, accepted_at=NOW) -> AcceptedQuoteLine:
    return AcceptedQuoteLine(
        quote_line_item_id=uuid.uuid4(),
        quote_id=uuid.uuid4(),
        estimate_line_item_id=line.id,
        cost=Decimal(cost),
        accepted_at=accepted_at,
    )


def test_subcontractor_line_uses_accepted_quote_cost():
    line = _line(LineItemCategory.SUBCONTRACTORS)
    quote = _accepted(line, "15000")

    resolved = resolve_line_cost(line, [quote])

    assert resolved.original_cost == Decimal("20000")
    assert resolved.adjusted_cost == Decimal("15000")
    assert resolved.source == "quote"
    assert resolved.quote_line_item_id == quote.quote_line_item_id


def test_labor_internal_line_ignores_accepted_quote():
    line = _line(LineItemCategory.LABOR_INTERNAL)
    resolved = resolve_line_cost(line, [_accepted(line, "15000")])

    assert resolved.adjusted_cost == Decimal("20000")
    assert resolved.source == "estimate"
    assert resolved.quote_line_item_id is None


def test_management_line_ignores_accepted_quote():
    line = _line(LineItemCategory.MANAGEMENT)
    resolved = resolve_line_cost(line, [_accepted(line, "1")])
    assert resolved.adjusted_cost == Decimal("20000")


def test_line_without_quote_falls_back_to_estimate_cost():
    line = _line(LineItemCategory.MATERIALS, cost="125.50", quantity="4")
    resolved = resolve_line_cost(line)

    assert resolved.adjusted_cost == Decimal("502.00")
    assert resolved.source == "estimate"


def test_most_recently_accepted_quote_line_wins():
    line = _line(LineItemCategory.SUBCONTRACTORS)
    older = _accepted(line, "18000", NOW - timedelta(days=2))
    newer = _accepted(line, "16000", NOW)

    assert pick_accepted_line([newer, older]) == newer
    assert pick_accepted_line([older, newer]) == newer


def test_naive_acceptance_timestamps_compare_as_utc():
    line = _line(LineItemCategory.SUBCONTRACTORS)
    naive_newer = _accepted(line, "16000", datetime(2026, 6, 1, 9, 0))
    aware_older = _accepted(line, "18000", NOW)

    assert pick_accepted_line([aware_older, naive_newer]) == naive_newer


def test_pick_accepted_line_empty():
    assert pick_accepted_line([]) is None


def test_resolve_costs_keeps_line_order():
    sub = _line(LineItemCategory.SUBCONTRACTORS)
    labor = _line(LineItemCategory.LABOR_INTERNAL, cost="8000")
    resolved = resolve_costs([sub, labor], {sub.id: [_accepted(sub, "15000")]})

    assert [r.estimate_line_item_id for r in resolved] == [sub.id, labor.id]
    assert [r.adjusted_cost for r in resolved] == [Decimal("15000"), Decimal("8000")]
