import uuid
from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.api.deps import get_db
from buildledger.core.ledger.expenses import ExpenseService
from buildledger.core.ledger.schemas import ExpenseCreate, ExpenseUpdate, SplitSet
from buildledger.db.models.expense import Expense

router = APIRouter(tags=["Expenses"])

service = ExpenseService()


# ---------- Schemas ----------


class SplitResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    split_amount: Decimal
    split_percentage: Decimal
    notes: str | None

    model_config = {"from_attributes": True}


class ExpenseResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    payee_id: uuid.UUID | None
    amount: Decimal
    category: str
    expense_date: date
    description: str | None
    approval_status: str
    is_split: bool
    created_at: datetime
    splits: list[SplitResponse] = []

    model_config = {"from_attributes": True}


async def _expense_response(db: AsyncSession, expense: Expense) -> ExpenseResponse:
    response = ExpenseResponse.model_validate(expense)
    response.splits = [SplitResponse.model_validate(s) for s in await service.splits(db, expense.id)]
    return response


# ---------- Endpoints ----------


@router.post("/expenses", response_model=ExpenseResponse, status_code=201)
async def create_expense(body: ExpenseCreate, db: AsyncSession = Depends(get_db)):
    expense = await service.create(db, body)
    return await _expense_response(db, expense)


@router.get("/projects/{project_id}/expenses", response_model=list[ExpenseResponse])
async def list_project_expenses(project_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return [await _expense_response(db, e) for e in await service.list_for_project(db, project_id)]


@router.patch("/expenses/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: uuid.UUID, body: ExpenseUpdate, db: AsyncSession = Depends(get_db)
):
    expense = await service.update(db, expense_id, body)
    return await _expense_response(db, expense)


@router.delete("/expenses/{expense_id}", status_code=204)
async def delete_expense(expense_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    await service.delete(db, expense_id)


@router.put("/expenses/{expense_id}/splits", response_model=ExpenseResponse)
async def set_expense_splits(
    expense_id: uuid.UUID, body: SplitSet, db: AsyncSession = Depends(get_db)
):
    await service.set_splits(db, expense_id, body.splits)
    return await _expense_response(db, await service.get(db, expense_id))


@router.delete("/expenses/{expense_id}/splits", response_model=ExpenseResponse)
async def clear_expense_splits(expense_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    expense = await service.clear_splits(db, expense_id)
    return await _expense_response(db, expense)
