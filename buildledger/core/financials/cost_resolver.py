"""Per-line "best known cost" resolution.

``labor_internal`` and ``management`` lines are never re-quoted externally and
always use the estimate's own cost. Every other category takes the cost of an
accepted quote line that references the estimate line, falling back to the
estimate cost when there is none.
"""

import uuid
from collections import defaultdict
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import LineItemCategory, QuoteStatus
from buildledger.common.logging import get_logger
from buildledger.core.financials.schemas import (
    AcceptedQuoteLine,
    EstimateLineInput,
    ResolvedLineCost,
)
from buildledger.db.models.quote import Quote, QuoteLineItem

logger = get_logger("financials.cost_resolver")

ESTIMATE_ONLY_CATEGORIES = frozenset(
    {LineItemCategory.LABOR_INTERNAL.value, LineItemCategory.MANAGEMENT.value}
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _acceptance_key(line: AcceptedQuoteLine) -> tuple[datetime, str]:
    accepted = line.accepted_at or _EPOCH
    if accepted.tzinfo is None:
        accepted = accepted.replace(tzinfo=timezone.utc)
    return accepted, str(line.quote_line_item_id)


def pick_accepted_line(candidates: list[AcceptedQuoteLine]) -> AcceptedQuoteLine | None:
    """Most recently accepted wins; quote line id breaks exact ties."""
    if not candidates:
        return None
    if len(candidates) > 1:
        logger.warning(
            "Estimate line %s has %d accepted quote lines, using the most recently accepted",
            candidates[0].estimate_line_item_id,
            len(candidates),
        )
    return max(candidates, key=_acceptance_key)


def resolve_line_cost(
    line: EstimateLineInput,
    accepted: list[AcceptedQuoteLine] | None = None,
) -> ResolvedLineCost:
    original = line.estimate_cost

    if line.category not in ESTIMATE_ONLY_CATEGORIES:
        chosen = pick_accepted_line(accepted or [])
        if chosen is not None:
            return ResolvedLineCost(
                estimate_line_item_id=line.id,
                category=line.category,
                original_cost=original,
                adjusted_cost=chosen.cost,
                source="quote",
                quote_line_item_id=chosen.quote_line_item_id,
            )

    return ResolvedLineCost(
        estimate_line_item_id=line.id,
        category=line.category,
        original_cost=original,
        adjusted_cost=original,
        source="estimate",
    )


def resolve_costs(
    lines: list[EstimateLineInput],
    accepted_by_line: dict[uuid.UUID, list[AcceptedQuoteLine]],
) -> list[ResolvedLineCost]:
    return [resolve_line_cost(line, accepted_by_line.get(line.id)) for line in lines]


async def load_accepted_quote_lines(
    db: AsyncSession, project_id: uuid.UUID
) -> dict[uuid.UUID, list[AcceptedQuoteLine]]:
    """Accepted quote costs for a project, grouped by the estimate line they reference.

    Lines of one quote that reference the same estimate line are parts of one
    price (labor plus material, say) and are summed into a single candidate.
    Only candidates from different quotes compete in ``pick_accepted_line``.
    """
    result = await db.execute(
        select(QuoteLineItem, Quote.accepted_at)
        .join(Quote, Quote.id == QuoteLineItem.quote_id)
        .where(
            Quote.project_id == project_id,
            Quote.status == QuoteStatus.ACCEPTED.value,
            Quote.is_deleted.is_(False),
            QuoteLineItem.is_deleted.is_(False),
            QuoteLineItem.estimate_line_item_id.is_not(None),
        )
    )

    per_quote: dict[tuple[uuid.UUID, uuid.UUID], AcceptedQuoteLine] = {}
    for qli, accepted_at in result.all():
        key = (qli.estimate_line_item_id, qli.quote_id)
        cost = qli.quantity * qli.cost_per_unit
        seen = per_quote.get(key)
        if seen is not None:
            cost += seen.cost
        # The lowest quote line id stands for the merged candidate
        first_id = qli.id if seen is None else min(seen.quote_line_item_id, qli.id, key=str)
        per_quote[key] = AcceptedQuoteLine(
            quote_line_item_id=first_id,
            quote_id=qli.quote_id,
            estimate_line_item_id=qli.estimate_line_item_id,
            cost=cost,
            accepted_at=accepted_at,
        )

    grouped: dict[uuid.UUID, list[AcceptedQuoteLine]] = defaultdict(list)
    for candidate in per_quote.values():
        grouped[candidate.estimate_line_item_id].append(candidate)
    return grouped


class CostResolver:
    async def resolve(
        self, db: AsyncSession, project_id: uuid.UUID, lines: list[EstimateLineInput]
    ) -> list[ResolvedLineCost]:
        if not lines:
            return []
        accepted = await load_accepted_quote_lines(db, project_id)
        return resolve_costs(lines, accepted)

    async def resolve_line(
        self, db: AsyncSession, project_id: uuid.UUID, line: EstimateLineInput
    ) -> ResolvedLineCost:
        accepted = await load_accepted_quote_lines(db, project_id)
        return resolve_line_cost(line, accepted.get(line.id))
