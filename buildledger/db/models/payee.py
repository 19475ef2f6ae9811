from decimal import Decimal

from sqlalchemy import Boolean, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from buildledger.common.enums import PayeeType
from buildledger.db.base import BaseModel


class Payee(BaseModel):
    __tablename__ = "payees"

    payee_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    payee_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PayeeType.VENDOR.value
    )
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
