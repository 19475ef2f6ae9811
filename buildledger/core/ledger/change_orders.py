import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import ChangeOrderStatus, LedgerTable
from buildledger.common.exceptions import BadRequestError, NotFoundError
from buildledger.common.logging import get_logger
from buildledger.common.money import dsum, to_money
from buildledger.core.financials.dispatcher import RecomputeDispatcher, dispatcher
from buildledger.core.ledger.projects import get_project
from buildledger.core.ledger.schemas import (
    ChangeOrderCreate,
    ChangeOrderLineItemIn,
    ChangeOrderUpdate,
)
from buildledger.db.base import utcnow
from buildledger.db.models.change_order import ChangeOrder, ChangeOrderLineItem

logger = get_logger("ledger.change_orders")

ACTION_STATUS = {
    "submit": ChangeOrderStatus.PENDING,
    "approve": ChangeOrderStatus.APPROVED,
    "reject": ChangeOrderStatus.REJECTED,
}
VALID_TRANSITIONS = {
    ChangeOrderStatus.DRAFT: [
        ChangeOrderStatus.PENDING,
        ChangeOrderStatus.APPROVED,
        ChangeOrderStatus.REJECTED,
    ],
    ChangeOrderStatus.PENDING: [ChangeOrderStatus.APPROVED, ChangeOrderStatus.REJECTED],
    ChangeOrderStatus.APPROVED: [],
    ChangeOrderStatus.REJECTED: [],
}


def _new_line(change_order_id: uuid.UUID, body: ChangeOrderLineItemIn) -> ChangeOrderLineItem:
    return ChangeOrderLineItem(
        change_order_id=change_order_id,
        category=body.category.value,
        description=body.description,
        quantity=body.quantity,
        cost_per_unit=body.cost_per_unit,
        price_per_unit=body.price_per_unit,
        total_cost=to_money(body.quantity * body.cost_per_unit),
        total=to_money(body.quantity * body.price_per_unit),
    )


class ChangeOrderService:
    def __init__(self, recompute: RecomputeDispatcher | None = None):
        self.dispatcher = recompute or dispatcher

    async def get(
        self, db: AsyncSession, project_id: uuid.UUID, change_order_id: uuid.UUID
    ) -> ChangeOrder:
        result = await db.execute(
            select(ChangeOrder).where(
                ChangeOrder.id == change_order_id,
                ChangeOrder.project_id == project_id,
                ChangeOrder.is_deleted.is_(False),
            )
        )
        change_order = result.scalar_one_or_none()
        if not change_order:
            raise NotFoundError("Change order", str(change_order_id))
        return change_order

    async def list_for_project(
        self, db: AsyncSession, project_id: uuid.UUID
    ) -> list[ChangeOrder]:
        await get_project(db, project_id)
        result = await db.execute(
            select(ChangeOrder)
            .where(ChangeOrder.project_id == project_id, ChangeOrder.is_deleted.is_(False))
            .order_by(ChangeOrder.created_at)
        )
        return list(result.scalars().all())

    async def lines(self, db: AsyncSession, change_order_id: uuid.UUID) -> list[ChangeOrderLineItem]:
        result = await db.execute(
            select(ChangeOrderLineItem)
            .where(
                ChangeOrderLineItem.change_order_id == change_order_id,
                ChangeOrderLineItem.is_deleted.is_(False),
            )
            .order_by(ChangeOrderLineItem.created_at)
        )
        return list(result.scalars().all())

    async def _refresh_amounts(self, db: AsyncSession, change_order: ChangeOrder) -> None:
        """Line items, when present, set the client amount and cost impact."""
        await db.flush()
        lines = await self.lines(db, change_order.id)
        if lines:
            change_order.client_amount = to_money(dsum(line.total for line in lines))
            change_order.cost_impact = to_money(dsum(line.total_cost for line in lines))
        change_order.margin_impact = change_order.client_amount - change_order.cost_impact

    @staticmethod
    def _ensure_editable(change_order: ChangeOrder) -> None:
        if change_order.status in (ChangeOrderStatus.APPROVED.value, ChangeOrderStatus.REJECTED.value):
            raise BadRequestError(f"Cannot edit a change order that is '{change_order.status}'")

    async def create(
        self, db: AsyncSession, project_id: uuid.UUID, body: ChangeOrderCreate
    ) -> ChangeOrder:
        await get_project(db, project_id)
        count = (
            await db.execute(
                select(func.count(ChangeOrder.id)).where(ChangeOrder.project_id == project_id)
            )
        ).scalar() or 0

        change_order = ChangeOrder(
            project_id=project_id,
            change_order_number=body.change_order_number or f"CO-{count + 1:03d}",
            description=body.description,
            reason=body.reason,
            status=ChangeOrderStatus.DRAFT.value,
            client_amount=to_money(body.client_amount),
            cost_impact=to_money(body.cost_impact),
            includes_contingency=body.includes_contingency,
        )
        db.add(change_order)
        await db.flush()

        for item in body.line_items:
            db.add(_new_line(change_order.id, item))
        await self._refresh_amounts(db, change_order)

        logger.info(
            "Created change order %s for project %s", change_order.change_order_number, project_id
        )
        await self.dispatcher.notify(db, LedgerTable.CHANGE_ORDERS, change_order)
        return change_order

    async def update(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        change_order_id: uuid.UUID,
        body: ChangeOrderUpdate,
    ) -> ChangeOrder:
        change_order = await self.get(db, project_id, change_order_id)
        current = ChangeOrderStatus(change_order.status)

        edits = body.model_dump(exclude_unset=True, exclude={"action"})
        if edits and current in (ChangeOrderStatus.APPROVED, ChangeOrderStatus.REJECTED):
            raise BadRequestError(f"Cannot edit a change order that is '{current.value}'")
        if body.description is not None:
            change_order.description = body.description
        if body.client_amount is not None:
            change_order.client_amount = to_money(body.client_amount)
        if body.cost_impact is not None:
            change_order.cost_impact = to_money(body.cost_impact)
        if body.includes_contingency is not None:
            change_order.includes_contingency = body.includes_contingency

        if body.action is not None:
            new_status = ACTION_STATUS[body.action]
            if new_status not in VALID_TRANSITIONS.get(current, []):
                raise BadRequestError(
                    f"Cannot transition change order from '{current.value}' to '{new_status.value}'"
                )
            change_order.status = new_status.value
            if new_status == ChangeOrderStatus.APPROVED:
                change_order.approved_at = utcnow()

        await self._refresh_amounts(db, change_order)
        await self.dispatcher.notify(db, LedgerTable.CHANGE_ORDERS, change_order)
        return change_order

    async def delete(
        self, db: AsyncSession, project_id: uuid.UUID, change_order_id: uuid.UUID
    ) -> None:
        change_order = await self.get(db, project_id, change_order_id)
        change_order.soft_delete()
        for line in await self.lines(db, change_order.id):
            line.soft_delete()
        await db.flush()
        await self.dispatcher.notify(db, LedgerTable.CHANGE_ORDERS, change_order)

    async def add_line(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        change_order_id: uuid.UUID,
        body: ChangeOrderLineItemIn,
    ) -> ChangeOrderLineItem:
        change_order = await self.get(db, project_id, change_order_id)
        self._ensure_editable(change_order)

        line = _new_line(change_order.id, body)
        db.add(line)
        await self._refresh_amounts(db, change_order)
        await self.dispatcher.notify(db, LedgerTable.CHANGE_ORDER_LINE_ITEMS, line)
        return line

    async def delete_line(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        change_order_id: uuid.UUID,
        line_id: uuid.UUID,
    ) -> None:
        change_order = await self.get(db, project_id, change_order_id)
        self._ensure_editable(change_order)
        result = await db.execute(
            select(ChangeOrderLineItem).where(
                ChangeOrderLineItem.id == line_id,
                ChangeOrderLineItem.change_order_id == change_order.id,
                ChangeOrderLineItem.is_deleted.is_(False),
            )
        )
        line = result.scalar_one_or_none()
        if not line:
            raise NotFoundError("Change order line item", str(line_id))

        line.soft_delete()
        # With no lines left the order keeps its last client amount and cost impact
        await self._refresh_amounts(db, change_order)
        await self.dispatcher.notify(db, LedgerTable.CHANGE_ORDER_LINE_ITEMS, line)
