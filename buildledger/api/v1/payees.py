import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.api.deps import get_db
from buildledger.core.ledger.projects import PayeeService
from buildledger.core.ledger.schemas import PayeeCreate

router = APIRouter(prefix="/payees", tags=["Payees"])

service = PayeeService()


class PayeeResponse(BaseModel):
    id: uuid.UUID
    payee_name: str
    payee_type: str
    is_internal: bool
    hourly_rate: Decimal | None
    email: str | None

    model_config = {"from_attributes": True}


@router.post("", response_model=PayeeResponse, status_code=201)
async def create_payee(body: PayeeCreate, db: AsyncSession = Depends(get_db)):
    payee = await service.create(db, body)
    return PayeeResponse.model_validate(payee)


@router.get("", response_model=list[PayeeResponse])
async def list_payees(db: AsyncSession = Depends(get_db)):
    return [PayeeResponse.model_validate(p) for p in await service.list_all(db)]
