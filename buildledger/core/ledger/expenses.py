"""Expense and revenue ledgers, both of which can be split across projects.

A split parent keeps its own ``project_id`` for bookkeeping but is only ever
counted through its split rows. Replacing a split set hard-deletes the old rows
and recomputes every project that was or is now a split target.
"""

import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import LedgerTable
from buildledger.common.exceptions import BadRequestError, NotFoundError
from buildledger.common.logging import get_logger
from buildledger.common.money import to_money
from buildledger.core.financials.dispatcher import RecomputeDispatcher, dispatcher
from buildledger.core.ledger.projects import get_payee, get_project
from buildledger.core.ledger.schemas import SplitIn
from buildledger.core.ledger.validation import normalize_splits
from buildledger.db.models.expense import Expense, ExpenseSplit
from buildledger.db.models.revenue import ProjectRevenue, RevenueSplit

logger = get_logger("ledger.expenses")


def _column_values(body: BaseModel, **kwargs) -> dict[str, Any]:
    values = body.model_dump(**kwargs)
    return {k: v.value if isinstance(v, Enum) else v for k, v in values.items()}


class SplitLedgerService:
    model: Any
    split_model: Any
    parent_fk: str
    table: LedgerTable
    label: str

    def __init__(self, recompute: RecomputeDispatcher | None = None):
        self.dispatcher = recompute or dispatcher

    async def get(self, db: AsyncSession, row_id: uuid.UUID):
        result = await db.execute(
            select(self.model).where(self.model.id == row_id, self.model.is_deleted.is_(False))
        )
        row = result.scalar_one_or_none()
        if not row:
            raise NotFoundError(self.label, str(row_id))
        return row

    async def splits(self, db: AsyncSession, row_id: uuid.UUID) -> list:
        result = await db.execute(
            select(self.split_model)
            .where(
                getattr(self.split_model, self.parent_fk) == row_id,
                self.split_model.is_deleted.is_(False),
            )
            .order_by(self.split_model.created_at)
        )
        return list(result.scalars().all())

    async def list_for_project(self, db: AsyncSession, project_id: uuid.UUID) -> list:
        """Rows owned by the project plus split parents with an allocation to it."""
        await get_project(db, project_id)
        allocated = select(getattr(self.split_model, self.parent_fk)).where(
            self.split_model.project_id == project_id,
            self.split_model.is_deleted.is_(False),
        )
        result = await db.execute(
            select(self.model)
            .where(
                self.model.is_deleted.is_(False),
                (self.model.project_id == project_id) | self.model.id.in_(allocated),
            )
            .order_by(self.model.created_at)
        )
        return list(result.scalars().all())

    async def _validate_refs(self, db: AsyncSession, values: dict[str, Any]) -> None:
        if values.get("project_id") is not None:
            await get_project(db, values["project_id"])

    async def create(self, db: AsyncSession, body: BaseModel):
        values = _column_values(body)
        await self._validate_refs(db, values)
        values["amount"] = to_money(values["amount"])

        row = self.model(**values, is_split=False)
        db.add(row)
        await db.flush()
        logger.info("Created %s %s for project %s", self.label.lower(), row.id, row.project_id)
        await self.dispatcher.notify(db, self.table, row)
        return row

    async def update(self, db: AsyncSession, row_id: uuid.UUID, body: BaseModel):
        row = await self.get(db, row_id)
        changes = _column_values(body, exclude_unset=True)
        await self._validate_refs(db, changes)

        if changes.get("amount") is not None:
            changes["amount"] = to_money(changes["amount"])
            if row.is_split and changes["amount"] != row.amount:
                raise BadRequestError(
                    f"{self.label} is split across projects; update its splits together with "
                    "the amount, or clear the splits first"
                )

        previous_project = row.project_id
        for field, value in changes.items():
            if value is not None:
                setattr(row, field, value)
        await db.flush()
        await self.dispatcher.notify(db, self.table, row, also=[previous_project])
        return row

    async def delete(self, db: AsyncSession, row_id: uuid.UUID) -> None:
        row = await self.get(db, row_id)
        row.soft_delete()
        for split in await self.splits(db, row.id):
            split.soft_delete()
        await db.flush()
        await self.dispatcher.notify(db, self.table, row)

    async def _drop_splits(self, db: AsyncSession, row) -> set[uuid.UUID]:
        result = await db.execute(
            select(self.split_model).where(getattr(self.split_model, self.parent_fk) == row.id)
        )
        previous = set()
        for split in result.scalars().all():
            previous.add(split.project_id)
            await db.delete(split)
        await db.flush()
        return previous

    async def set_splits(self, db: AsyncSession, row_id: uuid.UUID, splits: list[SplitIn]) -> list:
        """Replace the split set. Amounts must add up to the parent amount."""
        row = await self.get(db, row_id)
        for split in splits:
            await get_project(db, split.project_id)
        normalized = normalize_splits(row.amount, splits)

        previous = await self._drop_splits(db, row)
        created = []
        for split in normalized:
            new = self.split_model(
                project_id=split.project_id,
                split_amount=split.split_amount,
                split_percentage=split.split_percentage,
                notes=split.notes,
            )
            setattr(new, self.parent_fk, row.id)
            db.add(new)
            created.append(new)
        row.is_split = True
        await db.flush()

        logger.info(
            "Split %s %s (%s) across %d project(s)",
            self.label.lower(),
            row.id,
            row.amount,
            len(created),
        )
        await self.dispatcher.notify(db, self.table, row, also=previous)
        return created

    async def clear_splits(self, db: AsyncSession, row_id: uuid.UUID):
        row = await self.get(db, row_id)
        previous = await self._drop_splits(db, row)
        row.is_split = False
        await db.flush()
        await self.dispatcher.notify(db, self.table, row, also=previous)
        return row


class ExpenseService(SplitLedgerService):
    model = Expense
    split_model = ExpenseSplit
    parent_fk = "expense_id"
    table = LedgerTable.EXPENSES
    label = "Expense"

    async def _validate_refs(self, db: AsyncSession, values: dict[str, Any]) -> None:
        await super()._validate_refs(db, values)
        if values.get("payee_id") is not None:
            await get_payee(db, values["payee_id"])


class RevenueService(SplitLedgerService):
    model = ProjectRevenue
    split_model = RevenueSplit
    parent_fk = "revenue_id"
    table = LedgerTable.PROJECT_REVENUES
    label = "Revenue"
