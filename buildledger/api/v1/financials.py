"""Project financial snapshot: read, forced recompute, integrity audit and backfill."""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.api.deps import get_db, valid_project
from buildledger.core.financials.schemas import FinancialSnapshot
from buildledger.core.financials.service import financials_service, snapshot_from_project
from buildledger.core.financials.validation import (
    MarginWarning,
    load_accepted_quote_line_totals,
    validate_snapshot,
)
from buildledger.core.ledger.validation import IntegrityReport, audit_project_integrity
from buildledger.db.models.project import Project

router = APIRouter(tags=["Financials"])

NO_ESTIMATE_MESSAGE = "No approved estimate yet. Estimate-based figures are zero until one is approved."


class FinancialsResponse(BaseModel):
    project_id: uuid.UUID
    snapshot: FinancialSnapshot
    financials_updated_at: datetime | None
    warnings: list[MarginWarning]
    message: str | None = None


class BackfillResponse(BaseModel):
    task_id: str
    status: str


async def _financials_response(db: AsyncSession, project_id: uuid.UUID) -> FinancialsResponse:
    project = await financials_service.get_project(db, project_id)
    snapshot = snapshot_from_project(project)
    warnings = validate_snapshot(snapshot, await load_accepted_quote_line_totals(db, project_id))
    return FinancialsResponse(
        project_id=project_id,
        snapshot=snapshot,
        financials_updated_at=project.financials_updated_at,
        warnings=warnings,
        message=None if snapshot.has_approved_estimate else NO_ESTIMATE_MESSAGE,
    )


@router.get("/projects/{project_id}/financials", response_model=FinancialsResponse)
async def get_project_financials(project_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await _financials_response(db, project_id)


@router.post("/projects/{project_id}/financials/recompute", response_model=FinancialsResponse)
async def recompute_project_financials(project_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    await financials_service.recompute(db, project_id)
    return await _financials_response(db, project_id)


@router.get("/projects/{project_id}/financials/integrity", response_model=IntegrityReport)
async def get_project_integrity(
    project: Project = Depends(valid_project), db: AsyncSession = Depends(get_db)
):
    return await audit_project_integrity(db, project.id)


@router.post("/financials/backfill", response_model=BackfillResponse, status_code=202)
async def backfill_financials():
    from buildledger.tasks.financial_tasks import backfill_all_projects

    result = backfill_all_projects.delay()
    return BackfillResponse(task_id=str(result.id), status="queued")
