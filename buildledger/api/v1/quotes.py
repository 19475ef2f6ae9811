import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.api.deps import get_db
from buildledger.core.ledger.quotes import QuoteService
from buildledger.core.ledger.schemas import QuoteCreate, QuoteLineItemIn, QuoteUpdate
from buildledger.db.models.quote import Quote

router = APIRouter(prefix="/projects/{project_id}/quotes", tags=["Quotes"])

service = QuoteService()


# ---------- Schemas ----------


class QuoteLineItemResponse(BaseModel):
    id: uuid.UUID
    quote_id: uuid.UUID
    estimate_line_item_id: uuid.UUID | None
    category: str
    description: str
    quantity: Decimal
    cost_per_unit: Decimal
    price_per_unit: Decimal | None
    total_cost: Decimal
    total: Decimal | None

    model_config = {"from_attributes": True}


class QuoteResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    estimate_id: uuid.UUID | None
    payee_id: uuid.UUID | None
    quote_number: str
    status: str
    total_amount: Decimal
    accepted_at: datetime | None
    notes: str | None
    created_at: datetime
    line_items: list[QuoteLineItemResponse] = []

    model_config = {"from_attributes": True}


async def _quote_response(db: AsyncSession, quote: Quote) -> QuoteResponse:
    response = QuoteResponse.model_validate(quote)
    response.line_items = [
        QuoteLineItemResponse.model_validate(line) for line in await service.lines(db, quote.id)
    ]
    return response


# ---------- Endpoints ----------


@router.post("", response_model=QuoteResponse, status_code=201)
async def create_quote(project_id: uuid.UUID, body: QuoteCreate, db: AsyncSession = Depends(get_db)):
    quote = await service.create(db, project_id, body)
    return await _quote_response(db, quote)


@router.get("", response_model=list[QuoteResponse])
async def list_quotes(project_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return [await _quote_response(db, q) for q in await service.list_for_project(db, project_id)]


@router.patch("/{quote_id}", response_model=QuoteResponse)
async def update_quote(
    project_id: uuid.UUID,
    quote_id: uuid.UUID,
    body: QuoteUpdate,
    db: AsyncSession = Depends(get_db),
):
    quote = await service.update(db, project_id, quote_id, body)
    return await _quote_response(db, quote)


@router.delete("/{quote_id}", status_code=204)
async def delete_quote(project_id: uuid.UUID, quote_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    await service.delete(db, project_id, quote_id)


@router.post("/{quote_id}/line-items", response_model=QuoteLineItemResponse, status_code=201)
async def add_quote_line_item(
    project_id: uuid.UUID,
    quote_id: uuid.UUID,
    body: QuoteLineItemIn,
    db: AsyncSession = Depends(get_db),
):
    line = await service.add_line(db, project_id, quote_id, body)
    return QuoteLineItemResponse.model_validate(line)


@router.delete("/{quote_id}/line-items/{line_id}", status_code=204)
async def delete_quote_line_item(
    project_id: uuid.UUID,
    quote_id: uuid.UUID,
    line_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    await service.delete_line(db, project_id, quote_id, line_id)
