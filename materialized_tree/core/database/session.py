"""Async engine and session factory helpers.

Nothing here runs at import time: the caller decides when an engine exists
and hands the session factory to TreeService. Every mutation of the tree runs
inside ``transaction()``, which commits on success and rolls back on any
exception before re-raising it.

Example:
    engine = create_engine_from_settings(get_db_settings())
    session_factory = create_session_factory(engine)

    async with transaction(session_factory) as session:
        session.add(node)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from materialized_tree.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from materialized_tree.core.settings.database import DatabaseSettings

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)


def create_engine_from_settings(settings: DatabaseSettings | None = None) -> AsyncEngine:
    """Create an async engine from database settings.

    Args:
        settings: Database settings, loaded via get_db_settings() when omitted
    """
    if settings is None:
        from materialized_tree.core.settings import get_db_settings

        settings = get_db_settings()

    engine = create_async_engine(settings.url, **settings.engine_kwargs())
    logger.info(
        "Database engine created",
        extra={"dialect": engine.dialect.name, "sqlite": settings.is_sqlite},
    )
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory whose objects stay usable after commit."""
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@asynccontextmanager
async def transaction(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Open a session and run the body inside one transaction.

    Commits when the body completes; rolls back and re-raises on any error.
    """
    async with session_factory() as session, session.begin():
        lazy_logger.debug(lambda: f"transaction begin: session={id(session):#x}")
        yield session


@asynccontextmanager
async def read_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Open a session for reads; the implicit transaction ends with the session."""
    async with session_factory() as session:
        yield session


__all__ = [
    "create_engine_from_settings",
    "create_session_factory",
    "read_session",
    "transaction",
]
