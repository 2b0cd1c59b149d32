"""Pytest configuration and shared fixtures.

Organization:
    - Tenant Fixtures: tenant and owner references
    - Database Fixtures: SQLite engine, schema and session factory
    - Service Fixtures: TreeService wired to the test database

Database fixtures use a SQLite file under ``tmp_path`` rather than
``:memory:`` so that every pooled connection sees the same database.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from materialized_tree.core.database import OwnerRef, TenantRef, create_schema, create_session_factory
from materialized_tree.core.settings import TreeSettings
from materialized_tree.features.tree import TreeNode, TreeService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# Keep tests independent of the developer's environment
for _var in [name for name in os.environ if name.startswith(("TREE_", "DB_", "LOG_"))]:
    os.environ.pop(_var)


# ============================================================================
# Tenant Fixtures
# ============================================================================


@pytest.fixture
def tenant() -> TenantRef:
    """Primary tenant used by most tests."""
    return TenantRef(kind="organization", id="acme")


@pytest.fixture
def other_tenant() -> TenantRef:
    """Second tenant for isolation tests."""
    return TenantRef(kind="organization", id="globex")


@pytest.fixture
def owner() -> OwnerRef:
    return OwnerRef(kind="user", id="user-1")


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine]:
    """Create async SQLAlchemy engine on a fresh SQLite file.

    Yields:
        Async SQLAlchemy engine connected to ``tmp_path / "tree.db"``.
    """
    from sqlalchemy.ext.asyncio import create_async_engine

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tree.db'}", echo=False)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
async def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory over a database with the default tree table created."""
    await create_schema(db_engine, TreeNode)
    return create_session_factory(db_engine)


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def tree_settings() -> TreeSettings:
    return TreeSettings()


@pytest.fixture
def service(session_factory: async_sessionmaker[AsyncSession], tree_settings: TreeSettings) -> TreeService:
    """TreeService over the default tree table."""
    return TreeService(session_factory, settings=tree_settings)
