"""Change orders. Only approved change orders move contract value and projected cost."""

import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.api.deps import get_db
from buildledger.core.ledger.change_orders import ChangeOrderService
from buildledger.core.ledger.schemas import (
    ChangeOrderCreate,
    ChangeOrderLineItemIn,
    ChangeOrderUpdate,
)

router = APIRouter(prefix="/projects/{project_id}/change-orders", tags=["Change Orders"])

service = ChangeOrderService()


class ChangeOrderResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    change_order_number: str
    description: str
    reason: str | None
    status: str
    client_amount: Decimal
    cost_impact: Decimal
    margin_impact: Decimal
    includes_contingency: bool
    approved_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ChangeOrderLineItemResponse(BaseModel):
    id: uuid.UUID
    change_order_id: uuid.UUID
    category: str
    description: str
    quantity: Decimal
    cost_per_unit: Decimal
    price_per_unit: Decimal
    total_cost: Decimal
    total: Decimal

    model_config = {"from_attributes": True}


@router.post("", response_model=ChangeOrderResponse, status_code=201)
async def create_change_order(
    project_id: uuid.UUID, body: ChangeOrderCreate, db: AsyncSession = Depends(get_db)
):
    change_order = await service.create(db, project_id, body)
    return ChangeOrderResponse.model_validate(change_order)


@router.get("", response_model=list[ChangeOrderResponse])
async def list_change_orders(project_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return [
        ChangeOrderResponse.model_validate(c)
        for c in await service.list_for_project(db, project_id)
    ]


@router.patch("/{change_order_id}", response_model=ChangeOrderResponse)
async def update_change_order(
    project_id: uuid.UUID,
    change_order_id: uuid.UUID,
    body: ChangeOrderUpdate,
    db: AsyncSession = Depends(get_db),
):
    change_order = await service.update(db, project_id, change_order_id, body)
    return ChangeOrderResponse.model_validate(change_order)


@router.delete("/{change_order_id}", status_code=204)
async def delete_change_order(
    project_id: uuid.UUID, change_order_id: uuid.UUID, db: AsyncSession = Depends(get_db)
):
    await service.delete(db, project_id, change_order_id)


# ---------- Line items ----------


@router.get("/{change_order_id}/line-items", response_model=list[ChangeOrderLineItemResponse])
async def list_change_order_line_items(
    project_id: uuid.UUID, change_order_id: uuid.UUID, db: AsyncSession = Depends(get_db)
):
    change_order = await service.get(db, project_id, change_order_id)
    return [
        ChangeOrderLineItemResponse.model_validate(line)
        for line in await service.lines(db, change_order.id)
    ]


@router.post(
    "/{change_order_id}/line-items", response_model=ChangeOrderLineItemResponse, status_code=201
)
async def add_change_order_line_item(
    project_id: uuid.UUID,
    change_order_id: uuid.UUID,
    body: ChangeOrderLineItemIn,
    db: AsyncSession = Depends(get_db),
):
    line = await service.add_line(db, project_id, change_order_id, body)
    return ChangeOrderLineItemResponse.model_validate(line)


@router.delete("/{change_order_id}/line-items/{line_id}", status_code=204)
async def delete_change_order_line_item(
    project_id: uuid.UUID,
    change_order_id: uuid.UUID,
    line_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    await service.delete_line(db, project_id, change_order_id, line_id)
