"""Async engine, session factory and request-scoped session dependency."""

import asyncio
import logging
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from .config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for ORM models."""
    pass


def build_engine(url: str, **overrides: Any) -> AsyncEngine:
    """
    Create an async engine for ``url``.

    SQLite URLs (used by the test suite) share one connection through a
    StaticPool so an in-memory database survives across sessions. Every
    other backend gets the pooled PostgreSQL settings from config.
    """
    if make_url(url).get_backend_name() == "sqlite":
        options: dict[str, Any] = {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    else:
        options = {
            "pool_size": settings.db_pool_size,
            "max_overflow": settings.db_max_overflow,
            "pool_timeout": 15,  # fail fast, clients retry
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        }
    options["echo"] = settings.sql_echo
    options.update(overrides)
    return create_async_engine(url, **options)


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.database_url)
async_session_maker = build_session_maker(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding one session per request.

    Commits when the handler returns normally, rolls back when it raises.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_schema(bind: AsyncEngine) -> None:
    """Create every mapped table. Migrations own the schema outside of tests."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_schema(bind: AsyncEngine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def warmup_connection_pool(pool_size: Optional[int] = None) -> None:
    """
    Open ``pool_size`` connections up front so the first burst of
    requests does not pay the asyncpg handshake cost.

    Failures are logged and ignored; the pool refills lazily.
    """
    target_size = pool_size or settings.db_pool_size
    logger.info("Warming up %d database connections", target_size)

    async def ping(i: int) -> bool:
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Connection %d warmup failed: %s", i + 1, e)
            return False

    results = await asyncio.gather(*(ping(i) for i in range(target_size)))
    logger.info("Connection pool warmup complete (%d/%d ok)", sum(results), target_size)
