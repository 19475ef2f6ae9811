"""Operator-triggered recomputes. The request path never depends on these."""

import asyncio
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.exceptions import RecomputeTimeoutError
from buildledger.common.logging import get_logger
from buildledger.config import settings
from buildledger.core.financials.schemas import FinancialSnapshot
from buildledger.core.financials.service import financials_service
from buildledger.tasks.celery_app import app

logger = get_logger("tasks.financials")


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def recompute_one(db: AsyncSession, project_id: uuid.UUID) -> FinancialSnapshot:
    try:
        snapshot = await financials_service.recompute(db, project_id)
        await db.commit()
        return snapshot
    except Exception:
        await db.rollback()
        raise


async def queue_backfill(db: AsyncSession, batch_size: int | None = None) -> list[str]:
    """Queue one recompute task per live project, logging progress per batch."""
    batch_size = batch_size or settings.BACKFILL_BATCH_SIZE
    project_ids = [str(pid) for pid in await financials_service.list_project_ids(db)]

    for start in range(0, len(project_ids), batch_size):
        batch = project_ids[start : start + batch_size]
        for project_id in batch:
            recompute_project.delay(project_id)
        logger.info(
            "Queued recompute batch %d-%d of %d", start + 1, start + len(batch), len(project_ids)
        )
    return project_ids


@app.task(name="buildledger.tasks.financial_tasks.recompute_project", bind=True, max_retries=3)
def recompute_project(self, project_id: str):
    logger.info("Recomputing financials for project %s", project_id)

    async def _recompute():
        from buildledger.db.session import async_session_factory

        async with async_session_factory() as db:
            snapshot = await recompute_one(db, uuid.UUID(project_id))
            return snapshot.model_dump(mode="json")

    try:
        return _run_async(_recompute())
    except RecomputeTimeoutError as exc:
        logger.warning("Recompute timed out for project %s, retrying", project_id)
        raise self.retry(exc=exc, countdown=5)


@app.task(name="buildledger.tasks.financial_tasks.backfill_all_projects")
def backfill_all_projects():
    logger.info("Starting financial backfill")

    async def _backfill():
        from buildledger.db.session import async_session_factory

        async with async_session_factory() as db:
            return await queue_backfill(db)

    project_ids = _run_async(_backfill())
    logger.info("Backfill queued %d project(s)", len(project_ids))
    return len(project_ids)
