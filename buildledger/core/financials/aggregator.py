"""Project-scoped ledger sums.

Amounts are summed as ``Decimal`` in Python rather than with SQL ``SUM`` so the
result is exact on every backend; rounding happens once, when the snapshot is
built.
"""

import uuid
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import ChangeOrderStatus, EstimateStatus, QuoteStatus
from buildledger.common.money import ZERO, dsum
from buildledger.core.financials.schemas import EstimateBasis, EstimateLineInput, Totals
from buildledger.db.models.change_order import ChangeOrder
from buildledger.db.models.estimate import Estimate, EstimateLineItem
from buildledger.db.models.expense import Expense, ExpenseSplit
from buildledger.db.models.quote import Quote
from buildledger.db.models.revenue import ProjectRevenue, RevenueSplit


async def load_current_estimate(db: AsyncSession, project_id: uuid.UUID) -> Estimate | None:
    """The approved, current-version estimate that drives calculations, if any."""
    result = await db.execute(
        select(Estimate)
        .where(
            Estimate.project_id == project_id,
            Estimate.status == EstimateStatus.APPROVED.value,
            Estimate.is_current_version.is_(True),
            Estimate.is_deleted.is_(False),
        )
        .order_by(Estimate.version_number.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


def line_input(line: EstimateLineItem) -> EstimateLineInput:
    return EstimateLineInput(
        id=line.id,
        category=line.category,
        quantity=line.quantity,
        cost_per_unit=line.cost_per_unit,
        price_per_unit=line.price_per_unit,
        labor_hours=line.labor_hours,
        billing_rate_per_hour=line.billing_rate_per_hour,
        actual_cost_rate_per_hour=line.actual_cost_rate_per_hour,
    )


async def load_estimate_lines(db: AsyncSession, estimate_id: uuid.UUID) -> list[EstimateLineItem]:
    result = await db.execute(
        select(EstimateLineItem)
        .where(
            EstimateLineItem.estimate_id == estimate_id,
            EstimateLineItem.is_deleted.is_(False),
        )
        .order_by(EstimateLineItem.sort_order, EstimateLineItem.created_at)
    )
    return list(result.scalars().all())


async def load_estimate_basis(db: AsyncSession, project_id: uuid.UUID) -> EstimateBasis | None:
    estimate = await load_current_estimate(db, project_id)
    if estimate is None:
        return None

    lines = await load_estimate_lines(db, estimate.id)
    return EstimateBasis(
        estimate_id=estimate.id,
        total_amount=estimate.total_amount,
        total_cost=estimate.total_cost,
        contingency_amount=estimate.contingency_amount,
        contingency_used=estimate.contingency_used,
        lines=[line_input(line) for line in lines],
    )


async def sum_expenses(db: AsyncSession, project_id: uuid.UUID) -> Decimal:
    """Unsplit expenses on the project plus split allocations targeting it.

    The parent amount of a split expense is never counted.
    """
    direct = await db.execute(
        select(Expense.amount).where(
            Expense.project_id == project_id,
            Expense.is_split.is_(False),
            Expense.is_deleted.is_(False),
        )
    )
    allocated = await db.execute(
        select(ExpenseSplit.split_amount)
        .join(Expense, Expense.id == ExpenseSplit.expense_id)
        .where(
            ExpenseSplit.project_id == project_id,
            ExpenseSplit.is_deleted.is_(False),
            Expense.is_split.is_(True),
            Expense.is_deleted.is_(False),
        )
    )
    return dsum(direct.scalars()) + dsum(allocated.scalars())


async def sum_invoiced(db: AsyncSession, project_id: uuid.UUID) -> Decimal:
    direct = await db.execute(
        select(ProjectRevenue.amount).where(
            ProjectRevenue.project_id == project_id,
            ProjectRevenue.is_split.is_(False),
            ProjectRevenue.is_deleted.is_(False),
        )
    )
    allocated = await db.execute(
        select(RevenueSplit.split_amount)
        .join(ProjectRevenue, ProjectRevenue.id == RevenueSplit.revenue_id)
        .where(
            RevenueSplit.project_id == project_id,
            RevenueSplit.is_deleted.is_(False),
            ProjectRevenue.is_split.is_(True),
            ProjectRevenue.is_deleted.is_(False),
        )
    )
    return dsum(direct.scalars()) + dsum(allocated.scalars())


async def sum_accepted_quotes(db: AsyncSession, project_id: uuid.UUID) -> Decimal:
    result = await db.execute(
        select(Quote.total_amount).where(
            Quote.project_id == project_id,
            Quote.status == QuoteStatus.ACCEPTED.value,
            Quote.is_deleted.is_(False),
        )
    )
    return dsum(result.scalars())


async def sum_change_orders(
    db: AsyncSession, project_id: uuid.UUID
) -> tuple[Decimal, Decimal, Decimal]:
    """(revenue, cost, contingency-funded cost) over approved change orders."""
    result = await db.execute(
        select(
            ChangeOrder.client_amount,
            ChangeOrder.cost_impact,
            ChangeOrder.includes_contingency,
        ).where(
            ChangeOrder.project_id == project_id,
            ChangeOrder.status == ChangeOrderStatus.APPROVED.value,
            ChangeOrder.is_deleted.is_(False),
        )
    )
    revenue = cost = contingency = ZERO
    for client_amount, cost_impact, includes_contingency in result.all():
        revenue += client_amount or ZERO
        cost += cost_impact or ZERO
        if includes_contingency:
            contingency += cost_impact or ZERO
    return revenue, cost, contingency


class Aggregator:
    async def aggregate(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        estimate: EstimateBasis | None = None,
        *,
        load_estimate: bool = True,
    ) -> Totals:
        if estimate is None and load_estimate:
            estimate = await load_estimate_basis(db, project_id)

        co_revenue, co_cost, co_contingency = await sum_change_orders(db, project_id)
        return Totals(
            expenses=await sum_expenses(db, project_id),
            accepted_quotes=await sum_accepted_quotes(db, project_id),
            change_order_revenue=co_revenue,
            change_order_cost=co_cost,
            contingency_change_order_cost=co_contingency,
            estimate_total=estimate.total_amount if estimate else ZERO,
            estimate_cost=estimate.total_cost if estimate else ZERO,
            invoiced=await sum_invoiced(db, project_id),
        )
