"""
Pytest fixtures for image workflow tests.

Every test gets its own file-based SQLite database and blob directory, so
the engine's background tasks and the request handlers share one database
(in-memory SQLite is per-connection).
"""

import os
import tempfile
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

# Point module-level settings at throwaway locations before the app imports
_tmp_dir = tempfile.mkdtemp(prefix="image-workflow-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_tmp_dir}/app.db"
os.environ["BLOB_STORAGE_DIR"] = os.path.join(_tmp_dir, "blobs")
os.environ["OPENAI_API_KEY"] = ""
from src.config import Settings, get_settings
get_settings.cache_clear()

from src.database import close_db, create_engine_for_url, create_session_maker, init_db
from src.kernel.storage.blob_store import LocalBlobStore
from src.orchestration.state_machine import create_workflow_engine
from tests.support import FakeInference


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        blob_storage_dir=str(tmp_path / "blobs"),
        openai_api_key="",
        approval_timeout_seconds=5.0,
        step_retry_limit=2,
        step_retry_delay_seconds=0.0,
        poll_interval_seconds=0.01,
    )


@pytest_asyncio.fixture
async def db_engine(settings: Settings):
    engine = create_engine_for_url(settings.database_url)
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest.fixture
def session_maker(db_engine):
    return create_session_maker(db_engine)


@pytest.fixture
def blob_store(settings: Settings) -> LocalBlobStore:
    return LocalBlobStore(settings.blob_storage_dir)


@pytest.fixture
def inference() -> FakeInference:
    return FakeInference()


@pytest_asyncio.fixture
async def workflow_engine(session_maker, blob_store, settings, inference):
    engine = create_workflow_engine(session_maker, blob_store, settings=settings, inference=inference)
    yield engine
    await engine.aclose()


@pytest_asyncio.fixture
async def client(workflow_engine, blob_store, session_maker) -> AsyncGenerator[AsyncClient, None]:
    """Async client against the app, wired to this test's engine and database."""
    from src.api.deps import get_blob_store, get_workflow_engine
    from src.database import get_db
    from src.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_workflow_engine] = lambda: workflow_engine
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
