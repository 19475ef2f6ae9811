"""Advisory data-quality checks on a computed snapshot.

These never block a write; they flag figures that usually mean a price was
entered where a cost belonged.
"""

import uuid
from decimal import Decimal

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import QuoteStatus
from buildledger.common.money import HUNDRED
from buildledger.config import settings
from buildledger.core.financials.schemas import FinancialSnapshot
from buildledger.db.models.quote import Quote, QuoteLineItem

SUSPICIOUS_QUOTE_SHARE = Decimal("30")


class MarginWarning(BaseModel):
    code: str
    message: str


def detect_quote_price_cost_issue(
    quote_lines: list[tuple[Decimal | None, Decimal | None]],
    ratio: Decimal | None = None,
) -> MarginWarning | None:
    """``quote_lines`` is a list of ``(total_cost, total)`` pairs."""
    ratio = ratio if ratio is not None else settings.QUOTE_COST_PRICE_WARN_RATIO
    considered = suspicious = 0
    for cost, price in quote_lines:
        if not cost or not price:
            continue
        considered += 1
        if cost / price > ratio:
            suspicious += 1

    if not considered:
        return None
    if Decimal(suspicious) / Decimal(considered) * HUNDRED > SUSPICIOUS_QUOTE_SHARE:
        return MarginWarning(
            code="quote_cost_near_price",
            message=(
                f"{suspicious} of {considered} quote line items have costs very close to "
                "sell prices. Verify that costs (not prices) were entered."
            ),
        )
    return None


def detect_cost_decrease_issue(
    adjusted_costs: Decimal, original_costs: Decimal, threshold: Decimal | None = None
) -> MarginWarning | None:
    threshold = threshold if threshold is not None else settings.MARGIN_COST_DECREASE_WARN_PERCENT
    if not adjusted_costs or not original_costs:
        return None

    decrease = (original_costs - adjusted_costs) / original_costs * HUNDRED
    if decrease > threshold:
        return MarginWarning(
            code="adjusted_cost_decrease",
            message=(
                f"Adjusted costs (${adjusted_costs:,.0f}) are {decrease:.1f}% lower than "
                f"original costs (${original_costs:,.0f}). Verify quote data."
            ),
        )
    return None


def detect_cost_exceeds_contract_issue(
    projected_costs: Decimal, contract_value: Decimal, ratio: Decimal | None = None
) -> MarginWarning | None:
    ratio = ratio if ratio is not None else settings.MARGIN_COST_TO_CONTRACT_WARN_RATIO
    if not projected_costs or not contract_value:
        return None

    actual = projected_costs / contract_value
    if actual > ratio:
        return MarginWarning(
            code="cost_near_contract",
            message=(
                f"Projected costs (${projected_costs:,.0f}) are {actual * HUNDRED:.1f}% of "
                f"contract value (${contract_value:,.0f}). Margin is critically low or "
                "prices were entered as costs."
            ),
        )
    return None


def validate_snapshot(
    snapshot: FinancialSnapshot,
    quote_lines: list[tuple[Decimal | None, Decimal | None]] | None = None,
) -> list[MarginWarning]:
    checks = [
        detect_quote_price_cost_issue(quote_lines) if quote_lines else None,
        detect_cost_decrease_issue(snapshot.adjusted_est_costs, snapshot.original_est_costs),
        detect_cost_exceeds_contract_issue(snapshot.adjusted_est_costs, snapshot.contracted_amount),
    ]
    return [w for w in checks if w is not None]


async def load_accepted_quote_line_totals(
    db: AsyncSession, project_id: uuid.UUID
) -> list[tuple[Decimal | None, Decimal | None]]:
    result = await db.execute(
        select(QuoteLineItem.total_cost, QuoteLineItem.total)
        .join(Quote, Quote.id == QuoteLineItem.quote_id)
        .where(
            Quote.project_id == project_id,
            Quote.status == QuoteStatus.ACCEPTED.value,
            Quote.is_deleted.is_(False),
            QuoteLineItem.is_deleted.is_(False),
        )
    )
    return [tuple(row) for row in result.all()]
