"""Maps ledger mutations to the projects whose snapshot must be rebuilt.

Every write path in ``buildledger.core.ledger`` calls :meth:`RecomputeDispatcher.notify`
after flushing its change. Recompute is total and synchronous: each affected
project is re-derived from the ledger inside the same transaction as the
mutation, so a request only succeeds once the snapshot agrees with the ledger.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import LedgerTable
from buildledger.common.events import emit
from buildledger.common.logging import get_logger
from buildledger.core.financials.schemas import FinancialSnapshot
from buildledger.core.financials.service import FinancialsService, financials_service
from buildledger.db.models.change_order import ChangeOrder
from buildledger.db.models.estimate import Estimate
from buildledger.db.models.expense import Expense, ExpenseSplit
from buildledger.db.models.quote import Quote
from buildledger.db.models.revenue import ProjectRevenue, RevenueSplit

logger = get_logger("financials.dispatcher")

SNAPSHOT_EVENT = "financials.recomputed"

ProjectResolver = Callable[[AsyncSession, Any], Awaitable[set[uuid.UUID]]]


async def _own_project(db: AsyncSession, row: Any) -> set[uuid.UUID]:
    return {row.project_id}


def _via_parent(model: Any, fk: str) -> ProjectResolver:
    async def resolve(db: AsyncSession, row: Any) -> set[uuid.UUID]:
        result = await db.execute(select(model.project_id).where(model.id == getattr(row, fk)))
        project_id = result.scalar_one_or_none()
        return {project_id} if project_id else set()

    return resolve


async def _expense_projects(db: AsyncSession, row: Expense) -> set[uuid.UUID]:
    result = await db.execute(
        select(ExpenseSplit.project_id).where(ExpenseSplit.expense_id == row.id)
    )
    return {row.project_id, *result.scalars().all()}


async def _expense_split_projects(db: AsyncSession, row: ExpenseSplit) -> set[uuid.UUID]:
    parent = await _via_parent(Expense, "expense_id")(db, row)
    return {row.project_id, *parent}


async def _revenue_projects(db: AsyncSession, row: ProjectRevenue) -> set[uuid.UUID]:
    result = await db.execute(
        select(RevenueSplit.project_id).where(RevenueSplit.revenue_id == row.id)
    )
    return {row.project_id, *result.scalars().all()}


async def _revenue_split_projects(db: AsyncSession, row: RevenueSplit) -> set[uuid.UUID]:
    parent = await _via_parent(ProjectRevenue, "revenue_id")(db, row)
    return {row.project_id, *parent}


DISPATCH_TABLE: dict[LedgerTable, ProjectResolver] = {
    LedgerTable.ESTIMATES: _own_project,
    LedgerTable.ESTIMATE_LINE_ITEMS: _via_parent(Estimate, "estimate_id"),
    LedgerTable.QUOTES: _own_project,
    LedgerTable.QUOTE_LINE_ITEMS: _via_parent(Quote, "quote_id"),
    LedgerTable.CHANGE_ORDERS: _own_project,
    LedgerTable.CHANGE_ORDER_LINE_ITEMS: _via_parent(ChangeOrder, "change_order_id"),
    LedgerTable.EXPENSES: _expense_projects,
    LedgerTable.EXPENSE_SPLITS: _expense_split_projects,
    LedgerTable.PROJECT_REVENUES: _revenue_projects,
    LedgerTable.REVENUE_SPLITS: _revenue_split_projects,
}


class RecomputeDispatcher:
    def __init__(self, service: FinancialsService | None = None):
        self.service = service or financials_service

    async def affected_projects(
        self, db: AsyncSession, table: LedgerTable, row: Any
    ) -> set[uuid.UUID]:
        await db.flush()
        return await DISPATCH_TABLE[table](db, row)

    async def notify(
        self,
        db: AsyncSession,
        table: LedgerTable,
        row: Any,
        also: Iterable[uuid.UUID] = (),
    ) -> dict[uuid.UUID, FinancialSnapshot]:
        """Recompute every project touched by a mutation of ``row``.

        ``also`` carries projects the row belonged to before the mutation
        (a moved expense, replaced split targets).
        """
        project_ids = await self.affected_projects(db, table, row)
        project_ids.update(p for p in also if p)
        return await self.on_ledger_mutation(db, table, project_ids)

    async def on_ledger_mutation(
        self, db: AsyncSession, table: LedgerTable, project_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, FinancialSnapshot]:
        # Fixed lock order across projects avoids deadlocks between concurrent splits
        ordered = sorted(set(project_ids), key=str)
        logger.debug("Ledger mutation on %s affects %d project(s)", table.value, len(ordered))

        snapshots: dict[uuid.UUID, FinancialSnapshot] = {}
        for project_id in ordered:
            snapshots[project_id] = await self.service.recompute(db, project_id)

        for project_id, snapshot in snapshots.items():
            await emit(
                str(project_id),
                SNAPSHOT_EVENT,
                {"trigger": table.value, "snapshot": snapshot.model_dump(mode="json")},
            )
        return snapshots


dispatcher = RecomputeDispatcher()
