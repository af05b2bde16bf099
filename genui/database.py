"""
database.py — async SQLAlchemy plumbing for the component_sessions store.

Owns the engine and the session factory; store.py is the only module that
queries through them. Alembic (alembic/env.py) imports Base from here so the
migrations and the ORM see the same metadata.

Transaction boundary: one AsyncSession per request via get_db(). Store
functions only flush; the request commits at the end. The one exception is a
durable generation commit (CacheCoordinator._commit_durable), which commits
while the per-session lock is still held.
"""
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from genui.config import settings


class Base(DeclarativeBase):
    """Declarative base for genui/models/ (kept out of models/ for alembic/env.py)."""


async_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
)

# expire_on_commit=False: SessionRecord conversion may happen after a commit
AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: one AsyncSession per request.

    Commits when the route returns and rolls back on any exception, so a
    request that fails half-way (retries exhausted, session not found) leaves
    no partial update behind.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
