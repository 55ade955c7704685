import pytest
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from app.auth.actor import Actor
from app.models.base import Base
from app.services.auth.authorization_cache import AuthorizationCache, InMemoryCacheBackend
import app.models  # noqa: F401

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

@pytest.fixture
async def test_engine():
    """Fresh in-memory database per test"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()

@pytest.fixture
def session_maker(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

@pytest.fixture
async def session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session

@pytest.fixture
def backend() -> InMemoryCacheBackend:
    return InMemoryCacheBackend()

@pytest.fixture
def cache(backend) -> AuthorizationCache:
    return AuthorizationCache(backend, ttl_seconds=300)

@pytest.fixture
def admin() -> Actor:
    """Elevated actor"""
    return Actor(id=1, is_elevated=True)

@pytest.fixture
def editor() -> Actor:
    """Ordinary actor"""
    return Actor(id=2, is_elevated=False)
