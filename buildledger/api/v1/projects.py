import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.api.deps import get_db, valid_project
from buildledger.common.enums import ProjectStatus
from buildledger.common.pagination import PaginatedResponse, PaginationParams, paginate, total_pages
from buildledger.core.ledger.projects import ProjectService
from buildledger.core.ledger.schemas import ProjectCreate, ProjectUpdate
from buildledger.db.models.project import Project

router = APIRouter(prefix="/projects", tags=["Projects"])

service = ProjectService()

SORTABLE = frozenset(
    {
        "project_number",
        "created_at",
        "contracted_amount",
        "current_margin",
        "margin_percentage",
        "projected_margin",
        "total_expenses",
        "financials_updated_at",
    }
)


# ---------- Schemas ----------


class ProjectResponse(BaseModel):
    id: uuid.UUID
    project_number: str
    project_name: str
    client_name: str | None
    address: str | None
    status: str
    contracted_amount: Decimal
    current_margin: Decimal
    projected_margin: Decimal
    margin_percentage: Decimal
    has_approved_estimate: bool
    current_estimate_id: uuid.UUID | None
    financials_updated_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ProjectListResponse(PaginatedResponse[ProjectResponse]):
    pass


# ---------- Endpoints ----------


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(body: ProjectCreate, db: AsyncSession = Depends(get_db)):
    project = await service.create(db, body)
    return ProjectResponse.model_validate(project)


@router.get("", response_model=ProjectListResponse)
async def list_projects(
    status: ProjectStatus | None = None,
    db: AsyncSession = Depends(get_db),
    params: PaginationParams = Depends(),
):
    query = select(Project).where(Project.is_deleted.is_(False)).order_by(Project.created_at.desc())
    if status:
        query = query.where(Project.status == status.value)

    items, total = await paginate(db, query, params, Project, SORTABLE)
    return ProjectListResponse(
        items=[ProjectResponse.model_validate(p) for p in items],
        total=total,
        page=params.page,
        page_size=params.page_size,
        total_pages=total_pages(total, params),
    )


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project_detail(project: Project = Depends(valid_project)):
    return ProjectResponse.model_validate(project)


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: uuid.UUID, body: ProjectUpdate, db: AsyncSession = Depends(get_db)
):
    project = await service.update(db, project_id, body)
    return ProjectResponse.model_validate(project)
