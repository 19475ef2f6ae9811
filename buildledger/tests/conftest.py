from collections.abc import AsyncGenerator
from unittest.mock import MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from buildledger.db.base import Base
from buildledger.db.models import *  # noqa: F401,F403 - ensure all models loaded

# In-memory SQLite shared across the connection pool for one test
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(db_session):
    from buildledger.api.deps import get_db
    from buildledger.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def mock_celery_tasks():
    """Mock Celery task.delay() calls to prevent actual task execution in tests."""
    with (
        patch(
            "buildledger.tasks.financial_tasks.recompute_project.delay",
            return_value=MagicMock(id="mock-recompute"),
        ) as recompute,
        patch(
            "buildledger.tasks.financial_tasks.backfill_all_projects.delay",
            return_value=MagicMock(id="mock-backfill"),
        ) as backfill,
    ):
        yield {"recompute_project": recompute, "backfill_all_projects": backfill}

