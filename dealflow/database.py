"""Async engine, session factory and schema bootstrap for the pipeline store."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from .config import settings

logger = logging.getLogger(__name__)


def make_engine(url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """Create an engine for ``url`` (defaults to the configured database).

    An in-memory SQLite database lives on a single shared connection so that
    every session sees the same tables.
    """
    url = url or settings.database_url
    kwargs: dict = {"echo": settings.echo_sql if echo is None else echo}
    if url.startswith("sqlite"):
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, **kwargs)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Services hand committed rows back to routers and gateways
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


async def create_tables(bind: AsyncEngine) -> None:
    """Create every table from the ORM metadata. Alembic owns real deployments."""
    from .models import Base

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Created tables on %s", bind.url.render_as_string(hide_password=True))


engine = make_engine()
async_session_factory = make_session_factory(engine)


async def get_db():
    """FastAPI dependency that yields an async session."""
    async with async_session_factory() as session:
        yield session
