import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Load .env.test for tests if present; otherwise run against in-memory SQLite
from dotenv import load_dotenv

env_test_path = os.path.join(os.path.dirname(__file__), ".env.test")
if os.path.exists(env_test_path):
    load_dotenv(env_test_path, override=True)
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from libs.common.config import get_settings
from libs.db.base import Base
from services.marketplace_service.app.main import app

# Import all models so metadata includes every table
from services.marketplace_service import models as _marketplace_models  # noqa: F401

# Clear cached settings to reload with new env vars
get_settings.cache_clear()
settings = get_settings()


@pytest_asyncio.fixture
async def test_engine():
    """
    Create a fresh database per test.

    SQLite in-memory databases live as long as their connection, so the
    StaticPool keeps a single connection for the engine's lifetime.
    """
    engine_options = {"future": True}
    if settings.DATABASE_URL.startswith("sqlite"):
        engine_options.update(
            connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
    engine = create_async_engine(settings.DATABASE_URL, **engine_options)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a database session shared by the test body and the app.
    """
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    session = session_factory()

    try:
        yield session
    finally:
        await session.close()


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient with the app and overridden DB dependency.
    """
    from libs.db.session import get_async_db

    app.dependency_overrides[get_async_db] = lambda: db_session

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def fee_rate():
    return settings.SERVICE_FEE_RATE
