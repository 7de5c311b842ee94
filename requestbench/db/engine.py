"""Async SQLAlchemy engine and session factory.

Uses aiosqlite so the key-value backend stays embedded: the whole store is a
single ``sqlite+aiosqlite:///path/to/requestbench.db`` file.
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


def create_engine(database_url: str, **kwargs: object) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    For file-backed SQLite URLs the parent directory is created first so a
    fresh data root works without setup.  All defaults can be overridden via
    *kwargs*.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    defaults = {"echo": False}
    defaults.update(kwargs)  # type: ignore[arg-type]
    return create_async_engine(url, **defaults)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to *engine*.

    ``expire_on_commit=False`` so that ORM instances remain usable after
    commit without triggering lazy loads (important for async code where
    implicit IO is forbidden).
    """
    return async_sessionmaker(engine, expire_on_commit=False)
