import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.enums import ProjectStatus
from buildledger.common.exceptions import BadRequestError, ConflictError, NotFoundError
from buildledger.common.logging import get_logger
from buildledger.core.ledger.schemas import PayeeCreate, ProjectCreate, ProjectUpdate
from buildledger.db.models.payee import Payee
from buildledger.db.models.project import Project

logger = get_logger("ledger.projects")

VALID_TRANSITIONS = {
    ProjectStatus.ESTIMATING: [
        ProjectStatus.QUOTED,
        ProjectStatus.APPROVED,
        ProjectStatus.ON_HOLD,
        ProjectStatus.CANCELLED,
    ],
    ProjectStatus.QUOTED: [
        ProjectStatus.APPROVED,
        ProjectStatus.ESTIMATING,
        ProjectStatus.ON_HOLD,
        ProjectStatus.CANCELLED,
    ],
    ProjectStatus.APPROVED: [
        ProjectStatus.IN_PROGRESS,
        ProjectStatus.ON_HOLD,
        ProjectStatus.CANCELLED,
    ],
    ProjectStatus.IN_PROGRESS: [
        ProjectStatus.COMPLETE,
        ProjectStatus.ON_HOLD,
        ProjectStatus.CANCELLED,
    ],
    ProjectStatus.ON_HOLD: [
        ProjectStatus.ESTIMATING,
        ProjectStatus.QUOTED,
        ProjectStatus.APPROVED,
        ProjectStatus.IN_PROGRESS,
        ProjectStatus.CANCELLED,
    ],
    ProjectStatus.COMPLETE: [],
    ProjectStatus.CANCELLED: [],
}


async def get_project(db: AsyncSession, project_id: uuid.UUID) -> Project:
    result = await db.execute(
        select(Project).where(Project.id == project_id, Project.is_deleted.is_(False))
    )
    project = result.scalar_one_or_none()
    if not project:
        raise NotFoundError("Project", str(project_id))
    return project


async def get_payee(db: AsyncSession, payee_id: uuid.UUID) -> Payee:
    result = await db.execute(
        select(Payee).where(Payee.id == payee_id, Payee.is_deleted.is_(False))
    )
    payee = result.scalar_one_or_none()
    if not payee:
        raise NotFoundError("Payee", str(payee_id))
    return payee


class ProjectService:
    async def create(self, db: AsyncSession, body: ProjectCreate) -> Project:
        existing = await db.execute(
            select(Project.id).where(Project.project_number == body.project_number)
        )
        if existing.scalar_one_or_none():
            raise ConflictError(f"Project number '{body.project_number}' already exists")

        # Snapshot columns start at their zero defaults
        project = Project(
            project_number=body.project_number,
            project_name=body.project_name,
            client_name=body.client_name,
            address=body.address,
            status=ProjectStatus.ESTIMATING.value,
        )
        db.add(project)
        await db.flush()
        logger.info("Created project %s (%s)", project.project_number, project.id)
        return project

    async def update(self, db: AsyncSession, project_id: uuid.UUID, body: ProjectUpdate) -> Project:
        project = await get_project(db, project_id)

        if body.project_name is not None:
            project.project_name = body.project_name
        if body.client_name is not None:
            project.client_name = body.client_name
        if body.address is not None:
            project.address = body.address

        if body.status is not None and body.status.value != project.status:
            current = ProjectStatus(project.status)
            if body.status not in VALID_TRANSITIONS.get(current, []):
                raise BadRequestError(
                    f"Cannot transition project from '{current.value}' to '{body.status.value}'"
                )
            project.status = body.status.value

        await db.flush()
        return project


class PayeeService:
    async def create(self, db: AsyncSession, body: PayeeCreate) -> Payee:
        payee = Payee(
            payee_name=body.payee_name,
            payee_type=body.payee_type.value,
            is_internal=body.is_internal,
            hourly_rate=body.hourly_rate,
            email=body.email,
        )
        db.add(payee)
        await db.flush()
        return payee

    async def list_all(self, db: AsyncSession) -> list[Payee]:
        result = await db.execute(
            select(Payee).where(Payee.is_deleted.is_(False)).order_by(Payee.payee_name)
        )
        return list(result.scalars().all())
