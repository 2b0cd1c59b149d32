"""Tree node repository for database operations.

Every query here is scoped to one tenant and to live (not soft-deleted)
rows. Structural queries are expressed through the materialized path:
- descendants: one ``LIKE '<path>/%'`` filter
- ancestors: one ``IN`` over the paths computed from the node's own path
- depth: separator count, ``length(path) - length(replace(path, '/', ''))``

Subtree moves and deletes are single UPDATE/DELETE statements, so their cost
does not depend on loading the subtree into memory.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import String, delete, func, literal, select, update

from materialized_tree.core.database.base import utc_now
from materialized_tree.core.database.hierarchy.path import PATH_SEPARATOR, ROOT_PATH, MaterializedPath
from materialized_tree.core.database.repository import BaseRepository, SearchResult
from materialized_tree.core.database.tenancy import OwnerRef, TenantRef, live, owner_scope, tenant_scope
from materialized_tree.infra.logging import get_lazy_logger

from .models import TreeNode

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from sqlalchemy import Select
    from sqlalchemy.ext.asyncio import AsyncSession

_lazy = get_lazy_logger(__name__)

LOOKUP_KEYS = ("id", "code", "path")


class TreeNodeRepository(BaseRepository[Any]):
    """Repository for tree node database operations.

    Provides methods for:
    - Point lookups by id, code and path
    - Children, descendants, ancestors and depth queries
    - Name search and owner listing with pagination
    - Subtree path rewrite, soft delete and hard delete

    Example:
        repo = TreeNodeRepository()
        root = await repo.get_by_path(session, tenant, MaterializedPath.root())
        descendants = await repo.list_descendants(session, tenant, MaterializedPath.root())
    """

    def __init__(self, model: type[Any] = TreeNode) -> None:
        """Initialize tree node repository.

        Args:
            model: Mapped tree model, TreeNode or a build_tree_model() result
        """
        super().__init__(model)

    def scoped(self, tenant: TenantRef) -> Select[tuple[Any]]:
        """Select live rows of one tenant."""
        return select(self.model).where(tenant_scope(self.model, tenant), live(self.model))

    # ──────────────────────────────────────────────────────
    # Point lookups
    # ──────────────────────────────────────────────────────

    def lookup_statement(self, tenant: TenantRef, key: str, value: Any) -> Select[tuple[Any]]:
        """Select the live row of one tenant whose ``key`` column equals ``value``.

        Args:
            tenant: Tenant scope
            key: One of "id", "code" or "path"
            value: Value to match
        """
        if key not in LOOKUP_KEYS:
            raise ValueError(f"Unsupported lookup key {key!r}")
        if key == "path":
            value = str(value)
        return self.scoped(tenant).where(getattr(self.model, key) == value)

    async def get_or_raise(self, session: AsyncSession, tenant: TenantRef, key: str, value: Any) -> Any:
        """Fetch one live node of the tenant by id, code or path.

        Raises:
            NotFoundError: If no live node of the tenant matches
        """
        key_value = str(value) if key == "path" else value
        return await self.first_or_raise(session, self.lookup_statement(tenant, key, value), {key: key_value})

    async def get_by_id(self, session: AsyncSession, tenant: TenantRef, node_id: int) -> Any | None:
        return await self.first(session, self.lookup_statement(tenant, "id", node_id))

    async def get_by_code(self, session: AsyncSession, tenant: TenantRef, code: str) -> Any | None:
        return await self.first(session, self.lookup_statement(tenant, "code", code))

    async def get_by_path(self, session: AsyncSession, tenant: TenantRef, path: MaterializedPath) -> Any | None:
        return await self.first(session, self.lookup_statement(tenant, "path", path))

    async def get_by_paths(
        self,
        session: AsyncSession,
        tenant: TenantRef,
        paths: Iterable[MaterializedPath],
    ) -> Sequence[Any]:
        """Fetch every live node whose path is in ``paths`` in one query."""
        raw = sorted({str(path) for path in paths})
        if not raw:
            return []
        return await self.all(session, self.scoped(tenant).where(self.model.path.in_(raw)))

    # ──────────────────────────────────────────────────────
    # Structural queries
    # ──────────────────────────────────────────────────────

    def children_statement(self, tenant: TenantRef, parent_code: str) -> Select[tuple[Any]]:
        return self.scoped(tenant).where(self.model.parent_code == parent_code).order_by(self.model.path)

    async def list_children(self, session: AsyncSession, tenant: TenantRef, parent_code: str) -> Sequence[Any]:
        return await self.all(session, self.children_statement(tenant, parent_code))

    async def list_descendants(self, session: AsyncSession, tenant: TenantRef, path: MaterializedPath) -> Sequence[Any]:
        """All live strict descendants of ``path``, ordered by path."""
        stmt = self.scoped(tenant).where(self.model.subtree_clause(path)).order_by(self.model.path)
        return await self.all(session, stmt)

    async def count_descendants(self, session: AsyncSession, tenant: TenantRef, path: MaterializedPath) -> int:
        return await self.count(session, self.scoped(tenant).where(self.model.subtree_clause(path)))

    async def list_by_depth(self, session: AsyncSession, tenant: TenantRef, depth: int) -> Sequence[Any]:
        """Live non-root nodes with exactly ``depth`` segments, ordered by path.

        The root path holds one separator like every depth-1 path, so it is
        excluded explicitly.
        """
        path_col = self.model.path
        separators = func.length(path_col) - func.length(func.replace(path_col, PATH_SEPARATOR, ""))
        stmt = (
            self.scoped(tenant)
            .where(path_col != ROOT_PATH, separators == depth)
            .order_by(path_col)
        )
        return await self.all(session, stmt)

    async def search_by_name(
        self,
        session: AsyncSession,
        tenant: TenantRef,
        query: str,
        *,
        limit: int,
        offset: int,
    ) -> SearchResult[Any]:
        """Case-insensitive substring search on name.

        LIKE wildcards in ``query`` are escaped and match literally.
        """
        stmt = (
            self.scoped(tenant)
            .where(self.model.name.icontains(query, autoescape=True))
            .order_by(self.model.path)
        )
        return await self.search(session, stmt, limit=limit, offset=offset)

    async def search_by_owner(
        self,
        session: AsyncSession,
        tenant: TenantRef,
        owner: OwnerRef,
        *,
        limit: int,
        offset: int,
    ) -> SearchResult[Any]:
        stmt = self.scoped(tenant).where(owner_scope(self.model, owner)).order_by(self.model.path)
        return await self.search(session, stmt, limit=limit, offset=offset)

    # ──────────────────────────────────────────────────────
    # Structural writes
    # ──────────────────────────────────────────────────────

    async def rewrite_subtree(
        self,
        session: AsyncSession,
        tenant: TenantRef,
        old_path: MaterializedPath,
        new_path: MaterializedPath,
    ) -> int:
        """Replace the ``old_path`` prefix with ``new_path`` on a node and its descendants.

        One UPDATE statement:
        ``SET path = :new || substr(path, len(:old) + 1) WHERE path = :old OR path LIKE ':old/%'``

        Returns:
            Number of rows rewritten
        """
        path_col = self.model.path
        old = str(old_path)
        new_value = literal(str(new_path), String) + func.substr(path_col, len(old) + 1)
        stmt = (
            update(self.model)
            .where(
                tenant_scope(self.model, tenant),
                live(self.model),
                self.model.subtree_clause(old_path, include_self=True),
            )
            .values({path_col: new_value})
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        rewritten: int = result.rowcount
        _lazy.debug(lambda: f"db.rewrite_subtree: {old} -> {new_path} ({rewritten} rows)")
        return rewritten

    async def set_parent(self, session: AsyncSession, tenant: TenantRef, code: str, parent_code: str) -> None:
        stmt = (
            update(self.model)
            .where(tenant_scope(self.model, tenant), live(self.model), self.model.code == code)
            .values(parent_code=parent_code)
            .execution_options(synchronize_session=False)
        )
        await session.execute(stmt)

    async def soft_delete_subtree(
        self,
        session: AsyncSession,
        tenant: TenantRef,
        path: MaterializedPath,
        *,
        include_descendants: bool,
        deleted_by: str | None = None,
    ) -> int:
        """Mark a node (and optionally its descendants) deleted in one statement.

        Returns:
            Number of rows marked deleted
        """
        target = self.model.subtree_clause(path, include_self=True) if include_descendants else self.model.path == str(path)
        stmt = (
            update(self.model)
            .where(tenant_scope(self.model, tenant), live(self.model), target)
            .values(deleted_at=utc_now(), deleted_by=deleted_by)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount

    async def hard_delete_subtree(
        self,
        session: AsyncSession,
        tenant: TenantRef,
        path: MaterializedPath,
        *,
        include_descendants: bool,
    ) -> int:
        """Physically delete a node (and optionally its descendants) in one statement.

        Returns:
            Number of rows deleted
        """
        target = self.model.subtree_clause(path, include_self=True) if include_descendants else self.model.path == str(path)
        stmt = (
            delete(self.model)
            .where(tenant_scope(self.model, tenant), live(self.model), target)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        deleted: int = result.rowcount

        if deleted > 10:
            self._logger.warning(
                "Bulk subtree delete executed",
                extra={"entity": self.model.__name__, "path": str(path), "deleted": deleted, "operation": "db.hard_delete_subtree"},
            )
        return deleted
