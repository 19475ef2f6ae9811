import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import LedgerTable, QuoteStatus
from buildledger.common.exceptions import BadRequestError, NotFoundError
from buildledger.common.logging import get_logger
from buildledger.common.money import dsum, to_money
from buildledger.core.financials.dispatcher import RecomputeDispatcher, dispatcher
from buildledger.core.ledger.projects import get_payee, get_project
from buildledger.core.ledger.schemas import QuoteCreate, QuoteLineItemIn, QuoteUpdate
from buildledger.core.ledger.validation import ensure_quote_exclusive
from buildledger.db.base import utcnow
from buildledger.db.models.estimate import Estimate, EstimateLineItem
from buildledger.db.models.quote import Quote, QuoteLineItem

logger = get_logger("ledger.quotes")

ACTION_STATUS = {
    "accept": QuoteStatus.ACCEPTED,
    "reject": QuoteStatus.REJECTED,
    "expire": QuoteStatus.EXPIRED,
}
VALID_TRANSITIONS = {
    QuoteStatus.PENDING: [QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED],
    QuoteStatus.ACCEPTED: [QuoteStatus.REJECTED],
    QuoteStatus.REJECTED: [],
    QuoteStatus.EXPIRED: [],
}


class QuoteService:
    def __init__(self, recompute: RecomputeDispatcher | None = None):
        self.dispatcher = recompute or dispatcher

    async def get(self, db: AsyncSession, project_id: uuid.UUID, quote_id: uuid.UUID) -> Quote:
        result = await db.execute(
            select(Quote).where(
                Quote.id == quote_id,
                Quote.project_id == project_id,
                Quote.is_deleted.is_(False),
            )
        )
        quote = result.scalar_one_or_none()
        if not quote:
            raise NotFoundError("Quote", str(quote_id))
        return quote

    async def list_for_project(self, db: AsyncSession, project_id: uuid.UUID) -> list[Quote]:
        await get_project(db, project_id)
        result = await db.execute(
            select(Quote)
            .where(Quote.project_id == project_id, Quote.is_deleted.is_(False))
            .order_by(Quote.created_at)
        )
        return list(result.scalars().all())

    async def lines(self, db: AsyncSession, quote_id: uuid.UUID) -> list[QuoteLineItem]:
        result = await db.execute(
            select(QuoteLineItem)
            .where(QuoteLineItem.quote_id == quote_id, QuoteLineItem.is_deleted.is_(False))
            .order_by(QuoteLineItem.created_at)
        )
        return list(result.scalars().all())

    async def _check_estimate_line(
        self, db: AsyncSession, project_id: uuid.UUID, estimate_line_item_id: uuid.UUID
    ) -> None:
        result = await db.execute(
            select(EstimateLineItem.id)
            .join(Estimate, Estimate.id == EstimateLineItem.estimate_id)
            .where(
                EstimateLineItem.id == estimate_line_item_id,
                EstimateLineItem.is_deleted.is_(False),
                Estimate.project_id == project_id,
                Estimate.is_deleted.is_(False),
            )
        )
        if result.scalar_one_or_none() is None:
            raise BadRequestError(
                f"Estimate line item {estimate_line_item_id} does not belong to this project"
            )

    async def _refresh_total(self, db: AsyncSession, quote: Quote) -> None:
        """A quote with line items is worth the sum of their costs."""
        await db.flush()
        lines = await self.lines(db, quote.id)
        if lines:
            quote.total_amount = to_money(dsum(line.total_cost for line in lines))

    def _new_line(self, quote_id: uuid.UUID, body: QuoteLineItemIn) -> QuoteLineItem:
        total_cost = to_money(body.quantity * body.cost_per_unit)
        total = (
            to_money(body.quantity * body.price_per_unit)
            if body.price_per_unit is not None
            else None
        )
        return QuoteLineItem(
            quote_id=quote_id,
            estimate_line_item_id=body.estimate_line_item_id,
            category=body.category.value,
            description=body.description,
            quantity=body.quantity,
            cost_per_unit=body.cost_per_unit,
            price_per_unit=body.price_per_unit,
            total_cost=total_cost,
            total=total,
        )

    async def create(self, db: AsyncSession, project_id: uuid.UUID, body: QuoteCreate) -> Quote:
        await get_project(db, project_id)
        if body.payee_id is not None:
            await get_payee(db, body.payee_id)
        if body.estimate_id is not None:
            estimate = await db.execute(
                select(Estimate.id).where(
                    Estimate.id == body.estimate_id,
                    Estimate.project_id == project_id,
                    Estimate.is_deleted.is_(False),
                )
            )
            if estimate.scalar_one_or_none() is None:
                raise BadRequestError("Estimate does not belong to this project")
        for item in body.line_items:
            if item.estimate_line_item_id is not None:
                await self._check_estimate_line(db, project_id, item.estimate_line_item_id)

        count = (
            await db.execute(select(func.count(Quote.id)).where(Quote.project_id == project_id))
        ).scalar() or 0
        quote = Quote(
            project_id=project_id,
            estimate_id=body.estimate_id,
            payee_id=body.payee_id,
            quote_number=body.quote_number or f"Q-{count + 1:04d}",
            status=QuoteStatus.PENDING.value,
            total_amount=to_money(body.total_amount),
            notes=body.notes,
        )
        db.add(quote)
        await db.flush()

        for item in body.line_items:
            db.add(self._new_line(quote.id, item))
        await self._refresh_total(db, quote)

        logger.info("Created quote %s for project %s", quote.quote_number, project_id)
        await self.dispatcher.notify(db, LedgerTable.QUOTES, quote)
        return quote

    async def update(
        self, db: AsyncSession, project_id: uuid.UUID, quote_id: uuid.UUID, body: QuoteUpdate
    ) -> Quote:
        quote = await self.get(db, project_id, quote_id)
        new_status = ACTION_STATUS[body.action]
        current = QuoteStatus(quote.status)
        if new_status not in VALID_TRANSITIONS.get(current, []):
            raise BadRequestError(
                f"Cannot transition quote from '{current.value}' to '{new_status.value}'"
            )

        if new_status == QuoteStatus.ACCEPTED:
            lines = await self.lines(db, quote.id)
            await ensure_quote_exclusive(db, quote.id, [l.estimate_line_item_id for l in lines])
            quote.accepted_at = utcnow()
        elif current == QuoteStatus.ACCEPTED:
            quote.accepted_at = None

        quote.status = new_status.value
        await db.flush()
        logger.info("Quote %s %s -> %s", quote.quote_number, current.value, new_status.value)
        await self.dispatcher.notify(db, LedgerTable.QUOTES, quote)
        return quote

    async def delete(self, db: AsyncSession, project_id: uuid.UUID, quote_id: uuid.UUID) -> None:
        quote = await self.get(db, project_id, quote_id)
        quote.soft_delete()
        for line in await self.lines(db, quote.id):
            line.soft_delete()
        await db.flush()
        await self.dispatcher.notify(db, LedgerTable.QUOTES, quote)

    # ---------- Line items ----------

    async def add_line(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        quote_id: uuid.UUID,
        body: QuoteLineItemIn,
    ) -> QuoteLineItem:
        quote = await self.get(db, project_id, quote_id)
        if body.estimate_line_item_id is not None:
            await self._check_estimate_line(db, project_id, body.estimate_line_item_id)
            if quote.status == QuoteStatus.ACCEPTED.value:
                await ensure_quote_exclusive(db, quote.id, [body.estimate_line_item_id])

        line = self._new_line(quote.id, body)
        db.add(line)
        await self._refresh_total(db, quote)
        await self.dispatcher.notify(db, LedgerTable.QUOTE_LINE_ITEMS, line)
        return line

    async def delete_line(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        quote_id: uuid.UUID,
        line_id: uuid.UUID,
    ) -> None:
        quote = await self.get(db, project_id, quote_id)
        result = await db.execute(
            select(QuoteLineItem).where(
                QuoteLineItem.id == line_id,
                QuoteLineItem.quote_id == quote.id,
                QuoteLineItem.is_deleted.is_(False),
            )
        )
        line = result.scalar_one_or_none()
        if not line:
            raise NotFoundError("Quote line item", str(line_id))

        line.soft_delete()
        await self._refresh_total(db, quote)
        await self.dispatcher.notify(db, LedgerTable.QUOTE_LINE_ITEMS, line)
