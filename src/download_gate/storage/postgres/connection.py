"""SQLAlchemy async engine and session management.

Engines and session factories are created explicitly and handed to the
components that need them; nothing here is held in module state.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from download_gate.core.config import DatabaseConfig

from .models import Base

logger = logging.getLogger(__name__)


def create_engine(
    url: str,
    *,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    echo: bool = False,
    use_null_pool: bool = False,
) -> AsyncEngine:
    """Create and return a new SQLAlchemy :class:`AsyncEngine`.

    Args:
        url: Async database URL, e.g. ``postgresql+asyncpg://...`` or
            ``sqlite+aiosqlite:///path.db``.
        pool_size: Number of persistent connections to keep in the pool.
        max_overflow: Maximum additional connections beyond *pool_size*.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        echo: If ``True``, log all emitted SQL statements.
        use_null_pool: If ``True``, open a fresh connection per checkout.
            Used by tests, the CLI and SQLite URLs.

    Returns:
        A configured :class:`AsyncEngine` instance.
    """
    pool_kwargs: dict = {}
    if use_null_pool or url.startswith("sqlite"):
        pool_kwargs["poolclass"] = NullPool
    else:
        pool_kwargs.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
        )

    engine = create_async_engine(url, echo=echo, **pool_kwargs)
    logger.info("Created async engine for %s", url.split("@")[-1])
    return engine


def engine_from_config(config: DatabaseConfig, *, use_null_pool: bool = False) -> AsyncEngine:
    return create_engine(
        config.url,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        echo=config.echo,
        use_null_pool=use_null_pool,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory that keeps loaded attributes usable after commit."""
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables defined in the ORM metadata."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created / verified.")


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Yield a session that forms one unit of work.

    Usage::

        async with session_scope(factory) as session:
            await session.execute(update(DownloadRecord)...)
            ...

    The session is committed on successful exit and rolled back on
    exception. It is always closed afterwards, which also discards any
    uncommitted work left by a cancelled task.
    """
    session = session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
