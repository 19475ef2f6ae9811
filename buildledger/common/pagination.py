"""Paging and column sorting for list endpoints."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.exceptions import BadRequestError

T = TypeVar("T")


class PaginationParams:
    """Inject as a FastAPI dependency for any list endpoint."""

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number"),
        page_size: int = Query(50, ge=1, le=200, description="Items per page"),
        sort_by: str | None = Query(None, description="Column to sort by"),
        sort_order: str = Query("desc", pattern="^(asc|desc)$", description="asc or desc"),
    ):
        self.page = page
        self.page_size = page_size
        self.sort_by = sort_by
        self.sort_order = sort_order

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class PaginatedResponse(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int
    total_pages: int


async def paginate(
    db: AsyncSession,
    query: Select,
    params: PaginationParams,
    model: Any = None,
    sortable: frozenset[str] = frozenset(),
) -> tuple[list[Any], int]:
    """Return one page of ``query`` and the unpaged row count.

    ``sort_by`` replaces the query's own ordering and must name one of
    ``sortable``; anything else is a 400 rather than a silent fallback.
    """
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

    if params.sort_by:
        if params.sort_by not in sortable or model is None:
            allowed = ", ".join(sorted(sortable)) or "none"
            raise BadRequestError(f"Cannot sort by '{params.sort_by}' (allowed: {allowed})")
        col = getattr(model, params.sort_by)
        query = query.order_by(None).order_by(col.asc() if params.sort_order == "asc" else col.desc())

    result = await db.execute(query.offset(params.offset).limit(params.page_size))
    return list(result.scalars().all()), total


def total_pages(total: int, params: PaginationParams) -> int:
    return (total + params.page_size - 1) // params.page_size
