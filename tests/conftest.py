import os

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.deps import get_source_clients, get_translator
from app.db.base import Base
from app.db.session import get_db, get_session_factory
from app.main import app
from app.models.plant import Plant
from app.services.translation import TranslationCache, Translator


@pytest.fixture
def database_url(tmp_path) -> str:
    return os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'herbolive_test.db'}"


# NullPool prevents connections from being cached across event loop boundaries,
# which avoids "Future attached to a different loop" errors in pytest-asyncio.
@pytest_asyncio.fixture
async def engine(database_url: str):
    engine = create_async_engine(database_url, echo=False, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def add_plant(session_factory):
    """Insert a plant row and return its id."""

    async def _add(**values) -> int:
        async with session_factory() as session:
            plant = Plant(**values)
            session.add(plant)
            await session.commit()
            return plant.id

    return _add


@pytest.fixture
def source_clients() -> list:
    return []


@pytest_asyncio.fixture
async def client(db: AsyncSession, session_factory, source_clients):
    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_source_clients] = lambda: source_clients
    app.dependency_overrides[get_translator] = lambda: Translator(TranslationCache(max_entries=10), provider="none")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
