"""Shared test fixtures.

Tests run against in-memory SQLite with the schema built from the models;
collaborator services are replaced through FastAPI dependency overrides.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator

os.environ["RANKING_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from factories import FakeCompetitionDirectory, FakeLedger, FakeProjectDirectory, FakePublisher  # noqa: E402
from ranking.clients.notifications import get_notification_publisher  # noqa: E402
from ranking.clients.upstream import (  # noqa: E402
    get_competition_directory,
    get_project_directory,
    get_submission_ledger,
)
from ranking.config import get_settings  # noqa: E402
from ranking.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from ranking.db import models  # noqa: E402, F401
from ranking.db.base import Base  # noqa: E402
from ranking.main import create_app  # noqa: E402

get_settings.cache_clear()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def directory() -> FakeCompetitionDirectory:
    return FakeCompetitionDirectory()


@pytest.fixture
def projects() -> FakeProjectDirectory:
    return FakeProjectDirectory()


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database with every table created."""
    await init_db(get_settings().database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with get_session_factory()() as session:
        yield session
    await close_db()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    ledger: FakeLedger,
    directory: FakeCompetitionDirectory,
    projects: FakeProjectDirectory,
    publisher: FakePublisher,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the app, sharing the database with ``db_session``."""
    app = create_app()
    app.dependency_overrides[get_submission_ledger] = lambda: ledger
    app.dependency_overrides[get_competition_directory] = lambda: directory
    app.dependency_overrides[get_project_directory] = lambda: projects
    app.dependency_overrides[get_notification_publisher] = lambda: publisher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
