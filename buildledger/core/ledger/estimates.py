import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import EstimateStatus, LedgerTable, LineItemCategory
from buildledger.common.exceptions import BadRequestError, NotFoundError
from buildledger.common.logging import get_logger
from buildledger.common.money import HUNDRED, ZERO, dsum, to_money
from buildledger.config import settings
from buildledger.core.financials.aggregator import line_input, load_estimate_lines
from buildledger.core.financials.dispatcher import RecomputeDispatcher, dispatcher
from buildledger.core.financials.margin_calculator import labor_cushion, labor_view
from buildledger.core.ledger.projects import get_payee, get_project
from buildledger.core.ledger.schemas import (
    EstimateCreate,
    EstimateLineItemIn,
    EstimateLineItemUpdate,
    EstimateUpdate,
)
from buildledger.core.ledger.validation import (
    ensure_latest_version,
    ensure_no_other_current_version,
)
from buildledger.db.models.estimate import Estimate, EstimateLineItem

logger = get_logger("ledger.estimates")

ACTION_STATUS = {
    "send": EstimateStatus.SENT,
    "approve": EstimateStatus.APPROVED,
    "reject": EstimateStatus.REJECTED,
    "expire": EstimateStatus.EXPIRED,
}
VALID_TRANSITIONS = {
    EstimateStatus.DRAFT: [EstimateStatus.SENT, EstimateStatus.APPROVED, EstimateStatus.REJECTED],
    EstimateStatus.SENT: [EstimateStatus.APPROVED, EstimateStatus.REJECTED, EstimateStatus.EXPIRED],
    EstimateStatus.APPROVED: [EstimateStatus.EXPIRED],
    EstimateStatus.REJECTED: [],
    EstimateStatus.EXPIRED: [],
}


async def derive_line_fields(db: AsyncSession, line: EstimateLineItem) -> None:
    """Fill the derived totals and, for internal labor, the resolved labor rates."""
    line.total_cost = to_money(line.quantity * line.cost_per_unit)
    line.total = to_money(line.quantity * line.price_per_unit)
    line.total_markup = line.total - line.total_cost

    if line.category != LineItemCategory.LABOR_INTERNAL.value:
        line.labor_hours = None
        line.billing_rate_per_hour = None
        line.actual_cost_rate_per_hour = None
        line.labor_cushion_amount = ZERO
        return

    if line.labor_hours is None:
        line.labor_hours = line.quantity
    if line.billing_rate_per_hour is None:
        line.billing_rate_per_hour = line.cost_per_unit
    if line.actual_cost_rate_per_hour is None:
        rate = None
        if line.payee_id is not None:
            rate = (await get_payee(db, line.payee_id)).hourly_rate
        line.actual_cost_rate_per_hour = (
            rate if rate is not None else settings.DEFAULT_LABOR_ACTUAL_COST_RATE
        )

    line.labor_cushion_amount = to_money(
        labor_cushion(line.labor_hours, line.billing_rate_per_hour, line.actual_cost_rate_per_hour)
    )


async def refresh_estimate_totals(db: AsyncSession, estimate: Estimate) -> None:
    """Re-derive header totals from line items. Estimates without lines keep entered totals."""
    await db.flush()
    lines = await load_estimate_lines(db, estimate.id)
    if not lines:
        estimate.total_labor_cushion = ZERO
        estimate.max_gross_profit_potential = ZERO
        estimate.max_potential_margin_percent = ZERO
        return

    inputs = [line_input(line) for line in lines]
    subtotal = dsum(i.price for i in inputs)
    contingency = subtotal * estimate.contingency_percent / HUNDRED

    estimate.total_cost = to_money(dsum(i.estimate_cost for i in inputs))
    estimate.contingency_amount = to_money(contingency)
    estimate.total_amount = to_money(subtotal + contingency)

    labor = labor_view(inputs)
    estimate.total_labor_cushion = labor.total_labor_cushion
    estimate.max_gross_profit_potential = labor.max_gross_profit_potential
    estimate.max_potential_margin_percent = labor.max_potential_margin_percent


def _new_line(estimate_id: uuid.UUID, body: EstimateLineItemIn) -> EstimateLineItem:
    return EstimateLineItem(
        estimate_id=estimate_id,
        category=body.category.value,
        description=body.description,
        quantity=body.quantity,
        unit=body.unit,
        cost_per_unit=body.cost_per_unit,
        price_per_unit=body.price_per_unit,
        payee_id=body.payee_id,
        labor_hours=body.labor_hours,
        billing_rate_per_hour=body.billing_rate_per_hour,
        actual_cost_rate_per_hour=body.actual_cost_rate_per_hour,
        sort_order=body.sort_order,
    )


class EstimateService:
    def __init__(self, recompute: RecomputeDispatcher | None = None):
        self.dispatcher = recompute or dispatcher

    async def get(
        self, db: AsyncSession, project_id: uuid.UUID, estimate_id: uuid.UUID
    ) -> Estimate:
        result = await db.execute(
            select(Estimate).where(
                Estimate.id == estimate_id,
                Estimate.project_id == project_id,
                Estimate.is_deleted.is_(False),
            )
        )
        estimate = result.scalar_one_or_none()
        if not estimate:
            raise NotFoundError("Estimate", str(estimate_id))
        return estimate

    async def list_for_project(self, db: AsyncSession, project_id: uuid.UUID) -> list[Estimate]:
        await get_project(db, project_id)
        result = await db.execute(
            select(Estimate)
            .where(Estimate.project_id == project_id, Estimate.is_deleted.is_(False))
            .order_by(Estimate.version_number.desc())
        )
        return list(result.scalars().all())

    async def lines(self, db: AsyncSession, estimate_id: uuid.UUID) -> list[EstimateLineItem]:
        return await load_estimate_lines(db, estimate_id)

    async def _next_version(self, db: AsyncSession, project_id: uuid.UUID) -> int:
        latest = (
            await db.execute(
                select(func.max(Estimate.version_number)).where(Estimate.project_id == project_id)
            )
        ).scalar()
        return (latest or 0) + 1

    async def _demote_current(self, db: AsyncSession, project_id: uuid.UUID) -> list[Estimate]:
        result = await db.execute(
            select(Estimate).where(
                Estimate.project_id == project_id,
                Estimate.is_current_version.is_(True),
                Estimate.is_deleted.is_(False),
            )
        )
        previous = list(result.scalars().all())
        for estimate in previous:
            estimate.is_current_version = False
        # Demotion must reach the database before the new current row is inserted
        await db.flush()
        return previous

    async def create(
        self, db: AsyncSession, project_id: uuid.UUID, body: EstimateCreate
    ) -> Estimate:
        await get_project(db, project_id)

        if body.is_current_version:
            await ensure_no_other_current_version(db, project_id)
            make_current = True
        elif body.is_current_version is False:
            # A new, non-current row would leave an older version current
            await ensure_no_other_current_version(db, project_id)
            make_current = False
        else:
            superseded = await self._demote_current(db, project_id)
            if superseded:
                logger.info(
                    "New estimate supersedes %s for project %s",
                    ", ".join(str(e.id) for e in superseded),
                    project_id,
                )
            make_current = True

        version = await self._next_version(db, project_id)
        estimate = Estimate(
            project_id=project_id,
            estimate_number=body.estimate_number or f"EST-{version:04d}",
            version_number=version,
            is_current_version=make_current,
            status=EstimateStatus.DRAFT.value,
            total_amount=body.total_amount,
            total_cost=body.total_cost,
            contingency_percent=body.contingency_percent,
            contingency_amount=(
                body.contingency_amount
                if body.contingency_amount is not None
                else to_money(body.total_amount * body.contingency_percent / HUNDRED)
            ),
            contingency_used=ZERO,
            notes=body.notes,
        )
        db.add(estimate)
        await db.flush()

        for item in body.line_items:
            line = _new_line(estimate.id, item)
            await derive_line_fields(db, line)
            db.add(line)
        await refresh_estimate_totals(db, estimate)

        logger.info(
            "Created estimate %s v%d for project %s", estimate.estimate_number, version, project_id
        )
        await self.dispatcher.notify(db, LedgerTable.ESTIMATES, estimate)
        return estimate

    async def update(
        self, db: AsyncSession, project_id: uuid.UUID, estimate_id: uuid.UUID, body: EstimateUpdate
    ) -> Estimate:
        estimate = await self.get(db, project_id, estimate_id)

        if body.is_current_version is True and not estimate.is_current_version:
            await ensure_no_other_current_version(db, project_id, estimate.id)
            await ensure_latest_version(db, estimate)
            estimate.is_current_version = True
        elif body.is_current_version is False:
            estimate.is_current_version = False

        if body.action is not None:
            new_status = ACTION_STATUS[body.action]
            current = EstimateStatus(estimate.status)
            if new_status not in VALID_TRANSITIONS.get(current, []):
                raise BadRequestError(
                    f"Cannot transition estimate from '{current.value}' to '{new_status.value}'"
                )
            estimate.status = new_status.value

        if body.notes is not None:
            estimate.notes = body.notes
        if body.contingency_used is not None:
            estimate.contingency_used = body.contingency_used
        if body.contingency_percent is not None:
            estimate.contingency_percent = body.contingency_percent
            await refresh_estimate_totals(db, estimate)

        await db.flush()
        await self.dispatcher.notify(db, LedgerTable.ESTIMATES, estimate)
        return estimate

    async def create_version(
        self, db: AsyncSession, project_id: uuid.UUID, estimate_id: uuid.UUID
    ) -> Estimate:
        """Copy an estimate into a new draft that supersedes the current version."""
        source = await self.get(db, project_id, estimate_id)
        source_lines = await load_estimate_lines(db, source.id)
        await self._demote_current(db, project_id)

        version = await self._next_version(db, project_id)
        estimate = Estimate(
            project_id=project_id,
            parent_estimate_id=source.parent_estimate_id or source.id,
            estimate_number=source.estimate_number,
            version_number=version,
            is_current_version=True,
            status=EstimateStatus.DRAFT.value,
            total_amount=source.total_amount,
            total_cost=source.total_cost,
            contingency_percent=source.contingency_percent,
            contingency_amount=source.contingency_amount,
            contingency_used=ZERO,
            notes=source.notes,
        )
        db.add(estimate)
        await db.flush()

        for line in source_lines:
            db.add(
                EstimateLineItem(
                    estimate_id=estimate.id,
                    payee_id=line.payee_id,
                    category=line.category,
                    description=line.description,
                    sort_order=line.sort_order,
                    quantity=line.quantity,
                    unit=line.unit,
                    cost_per_unit=line.cost_per_unit,
                    price_per_unit=line.price_per_unit,
                    total_cost=line.total_cost,
                    total=line.total,
                    total_markup=line.total_markup,
                    labor_hours=line.labor_hours,
                    billing_rate_per_hour=line.billing_rate_per_hour,
                    actual_cost_rate_per_hour=line.actual_cost_rate_per_hour,
                    labor_cushion_amount=line.labor_cushion_amount,
                )
            )
        await refresh_estimate_totals(db, estimate)

        logger.info(
            "Estimate %s superseded by v%d for project %s", source.id, version, project_id
        )
        await self.dispatcher.notify(db, LedgerTable.ESTIMATES, estimate)
        return estimate

    async def delete(
        self, db: AsyncSession, project_id: uuid.UUID, estimate_id: uuid.UUID
    ) -> None:
        estimate = await self.get(db, project_id, estimate_id)
        estimate.is_current_version = False
        estimate.soft_delete()
        for line in await load_estimate_lines(db, estimate.id):
            line.soft_delete()
        await db.flush()
        await self.dispatcher.notify(db, LedgerTable.ESTIMATES, estimate)

    # ---------- Line items ----------

    async def get_line(
        self, db: AsyncSession, estimate: Estimate, line_id: uuid.UUID
    ) -> EstimateLineItem:
        result = await db.execute(
            select(EstimateLineItem).where(
                EstimateLineItem.id == line_id,
                EstimateLineItem.estimate_id == estimate.id,
                EstimateLineItem.is_deleted.is_(False),
            )
        )
        line = result.scalar_one_or_none()
        if not line:
            raise NotFoundError("Estimate line item", str(line_id))
        return line

    async def add_line(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        estimate_id: uuid.UUID,
        body: EstimateLineItemIn,
    ) -> EstimateLineItem:
        estimate = await self.get(db, project_id, estimate_id)
        line = _new_line(estimate.id, body)
        await derive_line_fields(db, line)
        db.add(line)
        await refresh_estimate_totals(db, estimate)
        await self.dispatcher.notify(db, LedgerTable.ESTIMATE_LINE_ITEMS, line)
        return line

    async def update_line(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        estimate_id: uuid.UUID,
        line_id: uuid.UUID,
        body: EstimateLineItemUpdate,
    ) -> EstimateLineItem:
        estimate = await self.get(db, project_id, estimate_id)
        line = await self.get_line(db, estimate, line_id)

        changes = body.model_dump(exclude_unset=True)
        if "category" in changes and changes["category"] is not None:
            changes["category"] = changes["category"].value
        rate_inputs = {"quantity", "cost_per_unit", "payee_id", "category"}
        if rate_inputs & changes.keys():
            # Re-resolve defaulted labor inputs unless given explicitly
            for field in ("labor_hours", "billing_rate_per_hour", "actual_cost_rate_per_hour"):
                if field not in changes:
                    setattr(line, field, None)
        for field, value in changes.items():
            setattr(line, field, value)

        await derive_line_fields(db, line)
        await refresh_estimate_totals(db, estimate)
        await self.dispatcher.notify(db, LedgerTable.ESTIMATE_LINE_ITEMS, line)
        return line

    async def delete_line(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        estimate_id: uuid.UUID,
        line_id: uuid.UUID,
    ) -> None:
        estimate = await self.get(db, project_id, estimate_id)
        line = await self.get_line(db, estimate, line_id)
        line.soft_delete()
        await refresh_estimate_totals(db, estimate)
        await self.dispatcher.notify(db, LedgerTable.ESTIMATE_LINE_ITEMS, line)

