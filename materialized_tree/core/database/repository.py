"""Generic async repository shared by tree model repositories.

Provides the handful of operations every model repository shares, with
explicit session passing. Model-specific queries live in subclasses; for
anything else, use the session directly.

Example:
    class TreeNodeRepository(BaseRepository[TreeNode]):
        async def get_by_code(self, session: AsyncSession, tenant: TenantRef, code: str) -> TreeNode | None:
            stmt = select(TreeNode).where(tenant_scope(TreeNode, tenant), TreeNode.code == code)
            return await self.first(session, stmt)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import Select, func, select

from materialized_tree.core.database.exceptions import NotFoundError
from materialized_tree.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class SearchResult(Generic[T]):
    """One page of query results plus the total row count.

    Attributes:
        items: Rows on this page
        total: Rows matching the query, ignoring limit and offset
        limit: Page size actually applied
        offset: Rows skipped before this page

    Example:
            result = await service.search_nodes(tenant, "report", limit=20, offset=0)
        names = [node.name for node in result.items]
        if result.has_next:
            next_result = await service.search_nodes(tenant, "report", limit=20, offset=20)
    """

    items: Sequence[T]
    total: int
    limit: int
    offset: int

    @property
    def page(self) -> int:
        """1-based page number."""
        return (self.offset // self.limit) + 1 if self.limit else 1

    @property
    def pages(self) -> int:
        """Page count for ``total`` rows."""
        if self.limit == 0:
            return 1
        return (self.total + self.limit - 1) // self.limit

    @property
    def has_next(self) -> bool:
        """True when rows remain after this page."""
        return self.offset + len(self.items) < self.total

    @property
    def has_prev(self) -> bool:
        """True when this is not the first page."""
        return self.offset > 0


class BaseRepository(Generic[T]):
    """Generic repository over one mapped model.

    Provides:
        - first(session, statement) -> T | None
        - first_or_raise(session, statement, identifier) -> T (raises NotFoundError)
        - all(session, statement) -> Sequence[T]
        - count(session, statement) -> int
        - search(session, statement, limit, offset) -> SearchResult[T]
        - create(session, instance) -> T
        - create_many(session, instances, batch_size) -> Sequence[T]

    Session is always explicit - no hidden state.
    """

    __slots__ = ("_lazy", "_logger", "model")

    def __init__(self, model: type[T]) -> None:
        """Bind the repository to a model class.

        Args:
            model: SQLAlchemy model class (e.g., TreeNode)
        """
        self.model = model
        # INFO and above
        self._logger = logging.getLogger(f"repository.{model.__name__}")
        # DEBUG, formatted only when enabled
        self._lazy = get_lazy_logger(f"repository.{model.__name__}")

    async def first(self, session: AsyncSession, statement: Select[tuple[T]]) -> T | None:
        """Execute a statement and return the first entity, if any."""
        result = await session.execute(statement.limit(1))
        return result.scalars().first()

    async def first_or_raise(
        self,
        session: AsyncSession,
        statement: Select[tuple[T]],
        identifier: dict[str, Any],
    ) -> T:
        """Execute a statement and return the first entity, failing when none matches.

        Args:
            session: Database session
            statement: Pre-filtered select statement
            identifier: Key-value pairs describing the lookup, reported on failure

        Raises:
            NotFoundError: If the statement matches no row
        """
        instance = await self.first(session, statement)
        if instance is None:
            self._logger.info(
                "Entity not found",
                extra={
                    "entity": self.model.__name__,
                    **{k: str(v) for k, v in identifier.items()},
                    "operation": "db.first_or_raise",
                },
            )
            raise NotFoundError(self.model.__name__, identifier)
        return instance

    async def all(self, session: AsyncSession, statement: Select[tuple[T]]) -> Sequence[T]:
        """Execute a statement and return every entity."""
        result = await session.execute(statement)
        items = result.scalars().all()
        self._lazy.debug(lambda: f"db.all: {self.model.__name__} -> {len(items)} items")
        return items

    async def count(self, session: AsyncSession, statement: Select[Any]) -> int:
        """Count the rows a statement would return."""
        count_stmt = select(func.count()).select_from(statement.order_by(None).subquery())
        return (await session.execute(count_stmt)).scalar_one()

    async def search(
        self,
        session: AsyncSession,
        statement: Select[tuple[T]],
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> SearchResult[T]:
        """Run ``statement`` for one page and count all matching rows.

        Takes a pre-built statement (with filters and ordering applied) and
        adds pagination.

        Args:
            session: Database session
            statement: SQLAlchemy select statement
            limit: Page size
            offset: Results to skip

        Returns:
            SearchResult for the requested page
        """
        total = await self.count(session, statement)

        result = await session.execute(statement.limit(limit).offset(offset))
        items = result.scalars().all()

        search_result = SearchResult(items=items, total=total, limit=limit, offset=offset)
        self._lazy.debug(
            lambda: f"db.search: {self.model.__name__}(limit={limit}, offset={offset}) -> {len(items)}/{total} items, page {search_result.page}/{search_result.pages}"
        )
        return search_result

    async def create(self, session: AsyncSession, instance: T) -> T:
        """Persist a new entity.

        Adds to session and flushes to get generated values (like id).
        """
        session.add(instance)
        await session.flush()

        entity_id = getattr(instance, "id", None)
        self._lazy.debug(lambda: f"db.create: {self.model.__name__}(id={entity_id})")
        return instance

    async def create_many(
        self,
        session: AsyncSession,
        instances: Iterable[T],
        *,
        batch_size: int = 100,
    ) -> Sequence[T]:
        """Persist multiple entities, flushing every ``batch_size`` rows.

        Args:
            session: Database session
            instances: Unsaved rows
            batch_size: Number of rows per flush

        Returns:
            The rows, flushed and carrying generated keys
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        instances_list = list(instances)
        for start in range(0, len(instances_list), batch_size):
            session.add_all(instances_list[start : start + batch_size])
            await session.flush()

        self._lazy.debug(
            lambda: f"db.create_many: {self.model.__name__} -> {len(instances_list)} created in batches of {batch_size}"
        )
        return instances_list


__all__ = [
    "BaseRepository",
    "SearchResult",
]
