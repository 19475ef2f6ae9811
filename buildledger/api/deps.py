import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.exceptions import DataIntegrityError, RecomputeError
from buildledger.common.logging import get_logger
from buildledger.core.ledger.projects import get_project
from buildledger.db.models.project import Project
from buildledger.db.session import async_session_factory

logger = get_logger("api.deps")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One transaction per request: ledger writes and their recomputes commit or roll back together."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except (DataIntegrityError, RecomputeError) as exc:
            logger.info("Rolled back ledger write: %s", exc.detail)
            await session.rollback()
            raise
        except Exception:
            await session.rollback()
            raise


async def valid_project(project_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> Project:
    """Resolve the ``{project_id}`` path parameter to a live project or 404."""
    return await get_project(db, project_id)
