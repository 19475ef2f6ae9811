import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.api.deps import get_db
from buildledger.core.ledger.estimates import EstimateService
from buildledger.core.ledger.schemas import (
    EstimateCreate,
    EstimateLineItemIn,
    EstimateLineItemUpdate,
    EstimateUpdate,
)
from buildledger.db.models.estimate import Estimate

router = APIRouter(prefix="/projects/{project_id}/estimates", tags=["Estimates"])

service = EstimateService()


# ---------- Schemas ----------


class EstimateLineItemResponse(BaseModel):
    id: uuid.UUID
    estimate_id: uuid.UUID
    payee_id: uuid.UUID | None
    category: str
    description: str
    sort_order: int
    quantity: Decimal
    unit: str | None
    cost_per_unit: Decimal
    price_per_unit: Decimal
    total_cost: Decimal
    total: Decimal
    total_markup: Decimal
    labor_hours: Decimal | None
    billing_rate_per_hour: Decimal | None
    actual_cost_rate_per_hour: Decimal | None
    labor_cushion_amount: Decimal

    model_config = {"from_attributes": True}


class EstimateResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    parent_estimate_id: uuid.UUID | None
    estimate_number: str
    version_number: int
    is_current_version: bool
    status: str
    total_amount: Decimal
    total_cost: Decimal
    contingency_percent: Decimal
    contingency_amount: Decimal
    contingency_used: Decimal
    total_labor_cushion: Decimal
    max_gross_profit_potential: Decimal
    max_potential_margin_percent: Decimal
    notes: str | None
    created_at: datetime
    line_items: list[EstimateLineItemResponse] = []

    model_config = {"from_attributes": True}


async def _estimate_response(db: AsyncSession, estimate: Estimate) -> EstimateResponse:
    lines = await service.lines(db, estimate.id)
    response = EstimateResponse.model_validate(estimate)
    response.line_items = [EstimateLineItemResponse.model_validate(line) for line in lines]
    return response


# ---------- Endpoints ----------


@router.post("", response_model=EstimateResponse, status_code=201)
async def create_estimate(
    project_id: uuid.UUID, body: EstimateCreate, db: AsyncSession = Depends(get_db)
):
    estimate = await service.create(db, project_id, body)
    return await _estimate_response(db, estimate)


@router.get("", response_model=list[EstimateResponse])
async def list_estimates(project_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    estimates = await service.list_for_project(db, project_id)
    return [EstimateResponse.model_validate(e) for e in estimates]


@router.get("/{estimate_id}", response_model=EstimateResponse)
async def get_estimate(
    project_id: uuid.UUID, estimate_id: uuid.UUID, db: AsyncSession = Depends(get_db)
):
    estimate = await service.get(db, project_id, estimate_id)
    return await _estimate_response(db, estimate)


@router.patch("/{estimate_id}", response_model=EstimateResponse)
async def update_estimate(
    project_id: uuid.UUID,
    estimate_id: uuid.UUID,
    body: EstimateUpdate,
    db: AsyncSession = Depends(get_db),
):
    estimate = await service.update(db, project_id, estimate_id, body)
    return await _estimate_response(db, estimate)


@router.delete("/{estimate_id}", status_code=204)
async def delete_estimate(
    project_id: uuid.UUID, estimate_id: uuid.UUID, db: AsyncSession = Depends(get_db)
):
    await service.delete(db, project_id, estimate_id)


@router.post("/{estimate_id}/versions", response_model=EstimateResponse, status_code=201)
async def create_estimate_version(
    project_id: uuid.UUID, estimate_id: uuid.UUID, db: AsyncSession = Depends(get_db)
):
    estimate = await service.create_version(db, project_id, estimate_id)
    return await _estimate_response(db, estimate)


# ---------- Line items ----------


@router.post(
    "/{estimate_id}/line-items", response_model=EstimateLineItemResponse, status_code=201
)
async def add_estimate_line_item(
    project_id: uuid.UUID,
    estimate_id: uuid.UUID,
    body: EstimateLineItemIn,
    db: AsyncSession = Depends(get_db),
):
    line = await service.add_line(db, project_id, estimate_id, body)
    return EstimateLineItemResponse.model_validate(line)


@router.patch("/{estimate_id}/line-items/{line_id}", response_model=EstimateLineItemResponse)
async def update_estimate_line_item(
    project_id: uuid.UUID,
    estimate_id: uuid.UUID,
    line_id: uuid.UUID,
    body: EstimateLineItemUpdate,
    db: AsyncSession = Depends(get_db),
):
    line = await service.update_line(db, project_id, estimate_id, line_id, body)
    return EstimateLineItemResponse.model_validate(line)


@router.delete("/{estimate_id}/line-items/{line_id}", status_code=204)
async def delete_estimate_line_item(
    project_id: uuid.UUID,
    estimate_id: uuid.UUID,
    line_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    await service.delete_line(db, project_id, estimate_id, line_id)
