"""Idempotent schema creation for tree tables.

Migrations are the application's concern. ``create_schema`` covers tests and
quick starts: it creates the table with all of its constraints and indexes
when absent and leaves an existing table untouched.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


async def create_schema(engine: AsyncEngine, model: Any) -> None:
    """Create the model's table and indexes if they do not exist.

    Args:
        engine: Async engine bound to the target database
        model: Mapped tree model class (e.g. TreeNode or a build_tree_model() result)
    """
    table = model.__table__
    async with engine.begin() as conn:
        await conn.run_sync(table.create, checkfirst=True)

    logger.info(
        "Tree schema ensured",
        extra={"table": table.name, "indexes": sorted(index.name for index in table.indexes)},
    )


async def drop_schema(engine: AsyncEngine, model: Any) -> None:
    """Drop the model's table if it exists."""
    table = model.__table__
    async with engine.begin() as conn:
        await conn.run_sync(table.drop, checkfirst=True)

    logger.info("Tree schema dropped", extra={"table": table.name})


__all__ = [
    "create_schema",
    "drop_schema",
]
