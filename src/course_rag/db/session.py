"""
Database Session Management

Builds the async SQLAlchemy engine (asyncpg driver) and the session factory
the chunk store opens one session per operation from.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..config import settings
from .models import Base


def make_engine(database_url: Optional[str] = None, echo: bool = False) -> AsyncEngine:
    """
    Create an engine for ``database_url`` (defaults to settings.database_url).

    Statements exceeding settings.db_command_timeout are cancelled by asyncpg
    and surface as errors to the caller.
    """
    return create_async_engine(
        database_url or settings.database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        connect_args={"command_timeout": settings.db_command_timeout},
    )


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async_engine = make_engine()
AsyncSessionLocal = make_session_factory(async_engine)


async def init_models(engine: Optional[AsyncEngine] = None) -> None:
    """
    Create the pgvector extension and the chunk table with its indexes.

    Idempotent: existing objects are left untouched.
    """
    async with (engine or async_engine).begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)
