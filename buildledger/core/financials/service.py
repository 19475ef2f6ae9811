import asyncio
import uuid

from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.exceptions import (
    BuildLedgerException,
    NotFoundError,
    RecomputeError,
    RecomputeTimeoutError,
)
from buildledger.common.logging import get_logger
from buildledger.config import settings
from buildledger.core.financials.aggregator import Aggregator, load_estimate_basis
from buildledger.core.financials.cost_resolver import CostResolver
from buildledger.core.financials.margin_calculator import calculate_snapshot
from buildledger.core.financials.schemas import SNAPSHOT_FIELDS, FinancialSnapshot
from buildledger.db.base import utcnow
from buildledger.db.models.project import Project

logger = get_logger("financials.service")

# SQLSTATE query_canceled, raised when statement_timeout expires
QUERY_CANCELED = "57014"


def snapshot_from_project(project: Project) -> FinancialSnapshot:
    return FinancialSnapshot(**{field: getattr(project, field) for field in SNAPSHOT_FIELDS})


def apply_snapshot(project: Project, snapshot: FinancialSnapshot) -> None:
    for field in SNAPSHOT_FIELDS:
        setattr(project, field, getattr(snapshot, field))
    project.financials_updated_at = utcnow()


def statement_timed_out(exc: DBAPIError) -> bool:
    orig = exc.orig
    return (getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)) == QUERY_CANCELED


class FinancialsService:
    def __init__(
        self,
        cost_resolver: CostResolver | None = None,
        aggregator: Aggregator | None = None,
        timeout: float | None = None,
        cancel_grace: float | None = None,
    ):
        self.cost_resolver = cost_resolver or CostResolver()
        self.aggregator = aggregator or Aggregator()
        self.timeout = timeout if timeout is not None else settings.RECOMPUTE_TIMEOUT_SECONDS
        self.cancel_grace = (
            cancel_grace if cancel_grace is not None else settings.RECOMPUTE_CANCEL_GRACE_SECONDS
        )

    async def calculate(self, db: AsyncSession, project_id: uuid.UUID) -> FinancialSnapshot:
        """Derive the snapshot from the ledger. Reads only, writes nothing."""
        estimate = await load_estimate_basis(db, project_id)
        totals = await self.aggregator.aggregate(db, project_id, estimate, load_estimate=False)
        line_costs = (
            await self.cost_resolver.resolve(db, project_id, estimate.lines) if estimate else []
        )
        return calculate_snapshot(totals, line_costs, estimate)

    async def recompute(self, db: AsyncSession, project_id: uuid.UUID) -> FinancialSnapshot:
        """Re-derive and store the project's snapshot inside the caller's transaction.

        On PostgreSQL each recompute statement runs under a server-side
        ``statement_timeout`` so a stuck query or lock wait is cancelled by the
        server and the connection stays usable. ``asyncio.wait_for`` only fires
        ``cancel_grace`` seconds later, for stalls outside the database.

        On any failure nothing is written to the project row; the caller's
        transaction is expected to roll back.
        """
        try:
            return await asyncio.wait_for(
                self._recompute(db, project_id), timeout=self.timeout + self.cancel_grace
            )
        except TimeoutError:
            logger.error("Recompute timed out for project %s after %.1fs", project_id, self.timeout)
            raise RecomputeTimeoutError(str(project_id), self.timeout)
        except BuildLedgerException:
            raise
        except DBAPIError as e:
            if statement_timed_out(e):
                logger.error(
                    "Recompute statement cancelled by the server for project %s after %.1fs",
                    project_id,
                    self.timeout,
                )
                raise RecomputeTimeoutError(str(project_id), self.timeout) from e
            logger.exception("Recompute failed for project %s", project_id)
            raise RecomputeError(str(project_id), type(e).__name__) from e
        except Exception as e:
            logger.exception("Recompute failed for project %s", project_id)
            raise RecomputeError(str(project_id), type(e).__name__) from e

    async def _set_statement_timeout(self, db: AsyncSession, milliseconds: int | None) -> None:
        if db.get_bind().dialect.name != "postgresql":
            return
        value = str(milliseconds) if milliseconds is not None else "DEFAULT"
        await db.execute(text(f"SET LOCAL statement_timeout = {value}"))

    async def _recompute(self, db: AsyncSession, project_id: uuid.UUID) -> FinancialSnapshot:
        await db.flush()
        await self._set_statement_timeout(db, max(int(self.timeout * 1000), 1))

        # Row lock serializes recomputes of the same project until commit
        result = await db.execute(
            select(Project)
            .where(Project.id == project_id, Project.is_deleted.is_(False))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        project = result.scalar_one_or_none()
        if not project:
            raise NotFoundError("Project", str(project_id))

        snapshot = await self.calculate(db, project_id)
        apply_snapshot(project, snapshot)
        await db.flush()
        # Later statements in the request run under the session default again
        await self._set_statement_timeout(db, None)

        logger.debug(
            "Recomputed project %s: contracted=%s projected_margin=%s",
            project_id,
            snapshot.contracted_amount,
            snapshot.projected_margin,
        )
        return snapshot

    async def get_snapshot(self, db: AsyncSession, project_id: uuid.UUID) -> FinancialSnapshot:
        project = await self.get_project(db, project_id)
        return snapshot_from_project(project)

    async def get_project(self, db: AsyncSession, project_id: uuid.UUID) -> Project:
        result = await db.execute(
            select(Project).where(Project.id == project_id, Project.is_deleted.is_(False))
        )
        project = result.scalar_one_or_none()
        if not project:
            raise NotFoundError("Project", str(project_id))
        return project

    async def list_project_ids(self, db: AsyncSession) -> list[uuid.UUID]:
        result = await db.execute(
            select(Project.id).where(Project.is_deleted.is_(False)).order_by(Project.created_at)
        )
        return list(result.scalars().all())


financials_service = FinancialsService()
