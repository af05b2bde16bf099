"""
Test configuration for genui.

Infrastructure is replaced in-process so the suite runs without services:
  - PostgreSQL → aiosqlite in-memory database (StaticPool, one connection)
  - Redis      → fakeredis async client
  - Mistral    → MagicMock whose chat.complete_async is an AsyncMock
  - Backoff    → RetryPolicy with an AsyncMock sleep (delays recorded, not slept)
"""
import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fakeredis import aioredis as fake_aioredis
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import genui.models  # noqa: F401: registers ORM models on Base.metadata
from genui.database import Base
from genui.generation.formatter import CodeFormatter
from genui.generation.llm_service import GenerationInvoker
from genui.generation.retry import RetryPolicy
from genui.sessions.coordinator import CacheCoordinator
from genui.sessions.locks import KeyedLock
from genui.sessions.service import SessionOrchestrator

# ---------------------------------------------------------------------------
# Infrastructure fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed database: separate sessions get separate connections and transactions."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'genui.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(eng, expire_on_commit=False)
    await eng.dispose()


@pytest_asyncio.fixture
async def redis():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def sleep_mock() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def retry_policy(sleep_mock) -> RetryPolicy:
    return RetryPolicy(max_attempts=3, backoff_base=2.0, sleep=sleep_mock)


@pytest.fixture
def build_orchestrator(retry_policy):
    """Factory: SessionOrchestrator over the given db / cache / mock Mistral."""
    locks = KeyedLock()
    formatter = CodeFormatter()

    def _build(db, cache, mistral) -> SessionOrchestrator:
        coordinator = CacheCoordinator(db, cache, ttl_seconds=3600)
        invoker = GenerationInvoker(mistral, asyncio.Semaphore(2), retry_policy=retry_policy)
        return SessionOrchestrator(db, coordinator, invoker, formatter=formatter, locks=locks)

    return _build
