import uuid
from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.api.deps import get_db
from buildledger.api.v1.expenses import SplitResponse
from buildledger.core.ledger.expenses import RevenueService
from buildledger.core.ledger.schemas import RevenueCreate, RevenueUpdate, SplitSet
from buildledger.db.models.revenue import ProjectRevenue

router = APIRouter(tags=["Revenues"])

service = RevenueService()


class RevenueResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    invoice_number: str | None
    amount: Decimal
    invoice_date: date
    description: str | None
    is_split: bool
    created_at: datetime
    splits: list[SplitResponse] = []

    model_config = {"from_attributes": True}


async def _revenue_response(db: AsyncSession, revenue: ProjectRevenue) -> RevenueResponse:
    response = RevenueResponse.model_validate(revenue)
    response.splits = [SplitResponse.model_validate(s) for s in await service.splits(db, revenue.id)]
    return response


@router.post("/revenues", response_model=RevenueResponse, status_code=201)
async def create_revenue(body: RevenueCreate, db: AsyncSession = Depends(get_db)):
    revenue = await service.create(db, body)
    return await _revenue_response(db, revenue)


@router.get("/projects/{project_id}/revenues", response_model=list[RevenueResponse])
async def list_project_revenues(project_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return [await _revenue_response(db, r) for r in await service.list_for_project(db, project_id)]


@router.patch("/revenues/{revenue_id}", response_model=RevenueResponse)
async def update_revenue(
    revenue_id: uuid.UUID, body: RevenueUpdate, db: AsyncSession = Depends(get_db)
):
    revenue = await service.update(db, revenue_id, body)
    return await _revenue_response(db, revenue)


@router.delete("/revenues/{revenue_id}", status_code=204)
async def delete_revenue(revenue_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    await service.delete(db, revenue_id)


@router.put("/revenues/{revenue_id}/splits", response_model=RevenueResponse)
async def set_revenue_splits(
    revenue_id: uuid.UUID, body: SplitSet, db: AsyncSession = Depends(get_db)
):
    await service.set_splits(db, revenue_id, body.splits)
    return await _revenue_response(db, await service.get(db, revenue_id))


@router.delete("/revenues/{revenue_id}/splits", response_model=RevenueResponse)
async def clear_revenue_splits(revenue_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    revenue = await service.clear_splits(db, revenue_id)
    return await _revenue_response(db, revenue)
