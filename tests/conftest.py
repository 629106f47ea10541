"""
Shared test fixtures.

The app reads DATABASE_URL at import time, so it is pointed at a throwaway
SQLite file before anything from `app` is imported.
"""

import asyncio
import os
import tempfile
from pathlib import Path

import pytest

TEST_DB_PATH = Path(tempfile.mkdtemp()) / "test_pack_labels.db"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.database import Base  # noqa: E402
from app.main import app  # noqa: E402


@pytest.fixture
def client():
    """API client against a fresh database file."""
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()
    app.dependency_overrides.clear()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def run_db():
    """
    Run an async test body against an in-memory database.

    Usage:
        def test_something(run_db):
            async def body(db):
                ...
            run_db(body)
    """
    def runner(body):
        async def main():
            engine = create_async_engine(
                "sqlite+aiosqlite://",
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            session_factory = async_sessionmaker(engine, expire_on_commit=False)
            try:
                async with session_factory() as session:
                    return await body(session)
            finally:
                await engine.dispose()

        return asyncio.run(main())

    return runner
