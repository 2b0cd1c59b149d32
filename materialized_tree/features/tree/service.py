"""Tree orchestration service.

Provides the main interface for reading and mutating materialized path trees.
TreeService composes the path algebra and node identifiers with scoped
repository queries:

- Every operation takes a TenantRef and never touches rows of other tenants
- Every mutation (create, move, delete, batch create, update) runs in one
  transaction that commits on success and rolls back on any error
- Lookups that miss raise UnauthorizedError, so callers cannot tell
  "does not exist" apart from "belongs to another tenant"

A service bound to a caller-owned session with ``with_session()`` runs every
operation inside that session's transaction instead and never commits it;
the caller commits or rolls back the tree changes together with its own.

Accepted races (reads are not linearizable with writers):
- A parent deleted between the existence check and the insert of a child
- Ancestor/descendant reads overlapping a concurrent move may see a torn
  snapshot
- Two concurrent moves of overlapping subtrees are ordered by the store's
  isolation level; serialize them externally if that matters

The one race handled internally is lazy root creation: the partial unique
index on (tenant, path) rejects a second live root, and the losing insert is
retried as a lookup.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError

from materialized_tree.core.database.exceptions import NotFoundError
from materialized_tree.core.database.hierarchy.identifiers import NodeIDSource, validate_node_id
from materialized_tree.core.database.hierarchy.path import MaterializedPath, validate_path
from materialized_tree.core.database.session import read_session, transaction
from materialized_tree.core.exceptions import (
    HasDescendantsError,
    InvalidMoveError,
    InvalidPathError,
    NegativeDepthError,
    ParentNotFoundError,
    RootHasNoParentError,
    UnauthorizedError,
)
from materialized_tree.core.settings import get_tree_settings
from materialized_tree.infra.logging import get_lazy_logger, lazy

from .models import build_tree_model
from .repository import TreeNodeRepository
from .schemas import NodeCreate, NodeUpdate, NodeWithChildren, TreeNodeRead

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from materialized_tree.core.database.repository import SearchResult
    from materialized_tree.core.database.tenancy import OwnerRef, TenantRef
    from materialized_tree.core.settings.tree import TreeSettings

logger = logging.getLogger(__name__)
_lazy = get_lazy_logger(__name__)

ROOT_METADATA = {"is_root": True}


def parse_path(raw: str | MaterializedPath) -> MaterializedPath:
    """Parse a caller-supplied path whose segments must be node IDs.

    Raises:
        InvalidPathError: If the path is malformed or a segment is not a node ID
    """
    if isinstance(raw, MaterializedPath):
        raw = str(raw)
    return MaterializedPath(validate_path(raw, strict_segments=True))


class TreeService:
    """Service for managing materialized path trees.

    Provides methods for:
    - Root and point lookups (by id, code and path)
    - Structural queries (parent, children, descendants, ancestors, depth)
    - Creating, updating, moving and deleting nodes
    - Batch creation and paginated search

    Example:
        engine = create_engine_from_settings()
        service = TreeService(create_session_factory(engine))
        tenant = TenantRef(kind="organization", id="acme")

        team = await service.create_node(tenant, "Engineering", "/")
        squad = await service.create_node(tenant, "Platform", team.path)
        await service.move_node(tenant, squad.path, "/")
        descendants = await service.get_descendants(tenant, "/")
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        settings: TreeSettings | None = None,
        model: type[Any] | None = None,
        id_source: NodeIDSource | None = None,
    ) -> None:
        """Initialize tree service.

        Args:
            session_factory: Factory for async database sessions.
            settings: Tree settings, loaded via get_tree_settings() when omitted.
            model: Mapped tree model. Built from the settings' table
                configuration when omitted.
            id_source: Node ID generator, a fresh NodeIDSource when omitted.

        Raises:
            InvalidConfigError: If the table configuration is malformed
        """
        self.settings = settings if settings is not None else get_tree_settings()
        self.model = model if model is not None else build_tree_model(self.settings.table_config())
        self.session_factory = session_factory
        self.repository = TreeNodeRepository(self.model)
        self._ids = id_source if id_source is not None else NodeIDSource()
        self._session: AsyncSession | None = None

    def with_session(self, session: AsyncSession) -> TreeService:
        """Return a service that runs every operation in ``session``.

        The bound service shares settings, model and ID source with this one.
        Mutations are flushed but never committed: the caller owns the
        transaction, so tree changes commit or roll back with the caller's
        own writes. After a failed operation the caller must roll back.

        Example:
            async with session_factory() as session, session.begin():
                session.add(project)
                folder = await service.with_session(session).create_node(tenant, project.name, "/")
        """
        bound = copy.copy(self)
        bound._session = session
        return bound

    # ──────────────────────────────────────────────────────
    # Internal helpers
    # ──────────────────────────────────────────────────────

    @asynccontextmanager
    async def _reading(self) -> AsyncIterator[AsyncSession]:
        if self._session is not None:
            await self._session.flush()
            yield self._session
            return
        async with read_session(self.session_factory) as session:
            yield session

    @asynccontextmanager
    async def _writing(self) -> AsyncIterator[AsyncSession]:
        if self._session is not None:
            yield self._session
            await self._session.flush()
            return
        async with transaction(self.session_factory) as session:
            yield session

    async def _require(self, session: AsyncSession, tenant: TenantRef, key: str, value: Any) -> Any:
        """Scoped lookup whose miss surfaces as UnauthorizedError."""
        try:
            return await self.repository.get_or_raise(session, tenant, key, value)
        except NotFoundError as exc:
            raise UnauthorizedError(**exc.identifier) from None

    def _page(self, limit: int | None, offset: int) -> tuple[int, int]:
        if limit is None:
            limit = self.settings.default_page_size
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if offset < 0:
            raise ValueError("offset cannot be negative")
        return min(limit, self.settings.max_page_size), offset

    def _new_node(
        self,
        tenant: TenantRef,
        *,
        name: str,
        parent: Any | None,
        owner: OwnerRef | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Any:
        """Build an unsaved node under ``parent`` (or a root when parent is None).

        Raises:
            InvalidPathError: If the node disagrees with its parent row
        """
        code = self._ids.new_id()
        if parent is None:
            path = MaterializedPath.root()
        else:
            path = parent.materialized_path.append(code)
        node = self.model(
            code=code,
            name=name,
            path=str(path),
            parent_code=parent.code if parent is not None else None,
            tenant_type=tenant.kind,
            tenant_id=tenant.id,
            owner_type=owner.kind if owner is not None else None,
            owner_id=owner.id if owner is not None else None,
            meta=metadata,
        )
        node.check_invariants(parent)
        return node

    @staticmethod
    def _log_extra(tenant: TenantRef, operation: str, **extra: Any) -> dict[str, Any]:
        return {**tenant.as_log_extra(), "operation": operation, **extra}

    # ──────────────────────────────────────────────────────
    # Root and point lookups
    # ──────────────────────────────────────────────────────

    async def get_root_node(self, tenant: TenantRef) -> Any:
        """Return the tenant's root node, creating it on first access.

        Concurrent first calls for the same tenant converge on one root: the
        insert that loses the unique-index race is retried as a lookup. A
        service bound with ``with_session()`` cannot retry inside the
        caller's transaction and lets the IntegrityError propagate.
        """
        async with self._reading() as session:
            root = await self.repository.get_by_path(session, tenant, MaterializedPath.root())
        if root is not None:
            return root

        try:
            async with self._writing() as session:
                root = self._new_node(tenant, name=self.settings.root_name, parent=None, metadata=dict(ROOT_METADATA))
                await self.repository.create(session, root)
        except IntegrityError:
            if self._session is not None:
                raise
            logger.info(
                "Root node created concurrently, reading it back",
                extra=self._log_extra(tenant, "tree.get_root_node"),
            )
            async with self._reading() as session:
                root = await self.repository.get_by_path(session, tenant, MaterializedPath.root())
            if root is None:
                raise
            return root

        logger.info(
            "Root node created",
            extra=self._log_extra(tenant, "tree.get_root_node", code=root.code),
        )
        return root

    async def get_node_by_id(self, tenant: TenantRef, node_id: int) -> Any:
        """Get a node by surrogate id.

        Raises:
            UnauthorizedError: If no live node with this id exists in the tenant
        """
        async with self._reading() as session:
            return await self._require(session, tenant, "id", node_id)

    async def get_node_by_code(self, tenant: TenantRef, code: str) -> Any:
        """Get a node by code.

        Raises:
            InvalidSegmentError: If code is not a node ID
            UnauthorizedError: If no live node with this code exists in the tenant
        """
        validate_node_id(code)
        async with self._reading() as session:
            return await self._require(session, tenant, "code", code)

    async def get_node_by_path(self, tenant: TenantRef, path: str | MaterializedPath) -> Any:
        """Get a node by materialized path.

        Raises:
            InvalidPathError: If the path is malformed
            UnauthorizedError: If no live node has this path in the tenant
        """
        node_path = parse_path(path)
        async with self._reading() as session:
            return await self._require(session, tenant, "path", node_path)

    # ──────────────────────────────────────────────────────
    # Structural queries
    # ──────────────────────────────────────────────────────

    async def get_parent(self, node: Any) -> Any:
        """Get the parent of a loaded node, scoped to the node's own tenant.

        Raises:
            RootHasNoParentError: If the node is a root
            UnauthorizedError: If the parent is no longer live
        """
        if node.is_root:
            raise RootHasNoParentError(code=node.code)
        async with self._reading() as session:
            return await self._require(session, node.tenant, "code", node.parent_code)

    async def get_parent_by_code(self, tenant: TenantRef, code: str) -> Any:
        node = await self.get_node_by_code(tenant, code)
        return await self.get_parent(node)

    async def get_parent_by_path(self, tenant: TenantRef, path: str | MaterializedPath) -> Any:
        """Get the node at the parent of ``path``.

        Raises:
            RootHasNoParentError: If path is the root path
            UnauthorizedError: If the parent path has no live node
        """
        node_path = parse_path(path)
        if node_path.is_root:
            raise RootHasNoParentError
        return await self.get_node_by_path(tenant, node_path.parent())

    async def get_children(self, tenant: TenantRef, parent_code: str) -> Sequence[Any]:
        """Direct children of the node with ``parent_code``, ordered by path."""
        validate_node_id(parent_code)
        async with self._reading() as session:
            children = await self.repository.list_children(session, tenant, parent_code)
        _lazy.debug(lambda: f"tree.get_children: {parent_code} -> {len(children)} children")
        return children

    async def get_children_by_path(self, tenant: TenantRef, parent_path: str | MaterializedPath) -> Sequence[Any]:
        """Direct children of the node at ``parent_path``.

        Raises:
            UnauthorizedError: If no live node has this path in the tenant
        """
        parent = await self.get_node_by_path(tenant, parent_path)
        return await self.get_children(tenant, parent.code)

    async def _node_with_children(
        self,
        tenant: TenantRef,
        key: str,
        value: Any,
        limit: int | None,
        offset: int,
    ) -> NodeWithChildren:
        limit, offset = self._page(limit, offset)
        async with self._reading() as session:
            node = await self._require(session, tenant, key, value)
            page = await self.repository.search(
                session,
                self.repository.children_statement(tenant, node.code),
                limit=limit,
                offset=offset,
            )
        return NodeWithChildren(node=node, children=list(page.items), total=page.total)

    async def get_node_with_children(
        self,
        tenant: TenantRef,
        code: str,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> NodeWithChildren:
        """Get a node together with one page of its direct children.

        Returns:
            NodeWithChildren(node, children, total) where total counts all children

        Raises:
            UnauthorizedError: If no live node with this code exists in the tenant
            ValueError: If limit < 1 or offset < 0
        """
        validate_node_id(code)
        return await self._node_with_children(tenant, "code", code, limit, offset)

    async def get_node_with_children_by_id(
        self,
        tenant: TenantRef,
        node_id: int,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> NodeWithChildren:
        """Like get_node_with_children(), addressing the node by surrogate id."""
        return await self._node_with_children(tenant, "id", node_id, limit, offset)

    async def get_descendants(self, tenant: TenantRef, path: str | MaterializedPath) -> Sequence[Any]:
        """All live strict descendants of ``path`` in one query, ordered by path."""
        node_path = parse_path(path)
        async with self._reading() as session:
            descendants = await self.repository.list_descendants(session, tenant, node_path)
        _lazy.debug(lambda: f"tree.get_descendants: {node_path} -> {len(descendants)} nodes")
        return descendants

    async def get_ancestors(
        self,
        tenant: TenantRef,
        path: str | MaterializedPath,
        *,
        include_self: bool = False,
    ) -> list[Any]:
        """Non-root ancestors of ``path``, ordered shallow to deep.

        All ancestor paths are computed from ``path`` and fetched in one query.
        Ancestors without a live row are omitted rather than reported.

        Args:
            tenant: Tenant scope
            path: Node path
            include_self: Append the node at ``path`` itself when live
        """
        node_path = parse_path(path)
        wanted = node_path.ancestors
        if include_self and not node_path.is_root:
            wanted.append(node_path)
        if not wanted:
            return []

        async with self._reading() as session:
            found = await self.repository.get_by_paths(session, tenant, wanted)

        by_path = {node.path: node for node in found}
        ancestors = [by_path[str(p)] for p in wanted if str(p) in by_path]
        _lazy.debug(
            "tree.get_ancestors: %s -> %d/%d found, missing %s",
            node_path,
            len(ancestors),
            len(wanted),
            lazy(lambda: [str(p) for p in wanted if str(p) not in by_path]),
        )
        return ancestors

    async def get_nested_ancestors(self, tenant: TenantRef, path: str | MaterializedPath) -> TreeNodeRead | None:
        """Ancestor chain as nested read schemas.

        Returns the shallowest ancestor; each level holds the next deeper
        ancestor as its only child. None when the path has no live ancestors.
        """
        ancestors = await self.get_ancestors(tenant, path)
        if not ancestors:
            return None

        chain = [TreeNodeRead.model_validate(node) for node in ancestors]
        for outer, inner in zip(chain, chain[1:], strict=False):
            outer.children = [inner]
        return chain[0]

    async def get_nodes_by_depth(self, tenant: TenantRef, depth: int) -> Sequence[Any]:
        """Live nodes at ``depth``; depth 0 returns the (lazily created) root.

        Raises:
            NegativeDepthError: If depth < 0
        """
        if depth < 0:
            raise NegativeDepthError(depth)
        if depth == 0:
            return [await self.get_root_node(tenant)]
        async with self._reading() as session:
            return await self.repository.list_by_depth(session, tenant, depth)

    async def search_nodes(
        self,
        tenant: TenantRef,
        query: str,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> SearchResult[Any]:
        """Case-insensitive name substring search, paginated.

        Raises:
            ValueError: If limit < 1 or offset < 0
        """
        limit, offset = self._page(limit, offset)
        async with self._reading() as session:
            return await self.repository.search_by_name(session, tenant, query, limit=limit, offset=offset)

    async def get_nodes_by_owner(
        self,
        tenant: TenantRef,
        owner: OwnerRef,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> SearchResult[Any]:
        """Nodes owned by ``owner`` within the tenant, paginated.

        Raises:
            ValueError: If limit < 1 or offset < 0
        """
        limit, offset = self._page(limit, offset)
        async with self._reading() as session:
            return await self.repository.search_by_owner(session, tenant, owner, limit=limit, offset=offset)

    # ──────────────────────────────────────────────────────
    # Mutations
    # ──────────────────────────────────────────────────────

    async def create_node(
        self,
        tenant: TenantRef,
        name: str,
        parent_path: str | MaterializedPath,
        *,
        owner: OwnerRef | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Any:
        """Create a node under ``parent_path``.

        A root parent is resolved (and lazily created) before the insert
        transaction opens.

        Raises:
            InvalidPathError: If parent_path is malformed
            ParentNotFoundError: If parent_path has no live node in the tenant
        """
        parent_node_path = parse_path(parent_path)
        parent = await self.get_root_node(tenant) if parent_node_path.is_root else None

        async with self._writing() as session:
            if parent is None:
                parent = await self.repository.get_by_path(session, tenant, parent_node_path)
                if parent is None:
                    raise ParentNotFoundError(str(parent_node_path))
            node = self._new_node(tenant, name=name, parent=parent, owner=owner, metadata=metadata)
            await self.repository.create(session, node)

        logger.info(
            "Node created",
            extra=self._log_extra(tenant, "tree.create_node", code=node.code, path=node.path),
        )
        return node

    async def update_node(
        self,
        tenant: TenantRef,
        code: str,
        changes: NodeUpdate | Mapping[str, Any],
    ) -> Any:
        """Update the non-structural fields of a node.

        Only name, owner and metadata can change; a mapping naming any other
        field fails validation before the database is touched.

        Raises:
            pydantic.ValidationError: If ``changes`` names a protected field
            UnauthorizedError: If no live node with this code exists in the tenant
        """
        update = changes if isinstance(changes, NodeUpdate) else NodeUpdate.model_validate(changes)
        validate_node_id(code)

        async with self._writing() as session:
            node = await self._require(session, tenant, "code", code)
            fields = update.model_fields_set
            if "name" in fields:
                node.name = update.name
            if "owner" in fields:
                node.owner = update.owner
            if "metadata" in fields:
                node.meta = update.metadata
            await session.flush()

        logger.info(
            "Node updated",
            extra=self._log_extra(tenant, "tree.update_node", code=code, fields=sorted(update.model_fields_set)),
        )
        return node

    async def move_node(
        self,
        tenant: TenantRef,
        path: str | MaterializedPath,
        new_parent_path: str | MaterializedPath,
    ) -> Any:
        """Move the node at ``path`` (with its subtree) under ``new_parent_path``.

        The node's path, every live descendant's path and the node's parent
        code change in one transaction; on any failure nothing changes.

        Raises:
            InvalidMoveError: If the node is the root, or the new parent is
                the node itself or one of its descendants
            UnauthorizedError: If no live node has ``path`` in the tenant
            ParentNotFoundError: If ``new_parent_path`` has no live node
            InvalidPathError: If the resolved parent row disagrees with the new path
        """
        node_path = parse_path(path)
        target_path = parse_path(new_parent_path)

        if node_path.is_root:
            raise InvalidMoveError("Cannot move the root node", str(node_path), str(target_path))
        if node_path == target_path or node_path.contains(target_path):
            raise InvalidMoveError(
                "Cannot move a node under itself or its descendants",
                str(node_path),
                str(target_path),
            )

        parent = await self.get_root_node(tenant) if target_path.is_root else None

        async with self._writing() as session:
            node = await self._require(session, tenant, "path", node_path)
            if parent is None:
                parent = await self.repository.get_by_path(session, tenant, target_path)
                if parent is None:
                    raise ParentNotFoundError(str(target_path))

            new_path = target_path.append(node.code)
            if new_path.parent() != parent.path:
                raise InvalidPathError(str(new_path), f"parent path is not {parent.path!r}")

            moved = await self.repository.rewrite_subtree(session, tenant, node_path, new_path)
            await self.repository.set_parent(session, tenant, node.code, parent.code)
            await session.refresh(node)
            node.check_invariants(parent)

        logger.info(
            "Node moved",
            extra=self._log_extra(
                tenant,
                "tree.move_node",
                code=node.code,
                old_path=str(node_path),
                new_path=str(new_path),
                moved=moved,
            ),
        )
        return node

    async def delete_node(
        self,
        tenant: TenantRef,
        path: str | MaterializedPath,
        *,
        cascade: bool = False,
        deleted_by: str | None = None,
    ) -> int:
        """Delete the node at ``path``.

        Soft deletes (sets deleted_at) unless the service was configured with
        ``soft_delete=False``.

        Args:
            tenant: Tenant scope
            path: Node path
            cascade: Also delete every descendant
            deleted_by: Actor recorded on soft-deleted rows

        Returns:
            Number of rows deleted

        Raises:
            UnauthorizedError: If no live node has ``path`` in the tenant
            HasDescendantsError: If the node has descendants and cascade is False
        """
        node_path = parse_path(path)

        async with self._writing() as session:
            await self._require(session, tenant, "path", node_path)

            descendants = await self.repository.count_descendants(session, tenant, node_path)
            if descendants and not cascade:
                raise HasDescendantsError(str(node_path), descendants)

            if self.settings.soft_delete:
                deleted = await self.repository.soft_delete_subtree(
                    session,
                    tenant,
                    node_path,
                    include_descendants=cascade,
                    deleted_by=deleted_by,
                )
            else:
                deleted = await self.repository.hard_delete_subtree(
                    session,
                    tenant,
                    node_path,
                    include_descendants=cascade,
                )

        logger.info(
            "Node deleted",
            extra=self._log_extra(
                tenant,
                "tree.delete_node",
                path=str(node_path),
                deleted=deleted,
                soft=self.settings.soft_delete,
            ),
        )
        return deleted

    async def batch_create_nodes(self, tenant: TenantRef, items: Sequence[NodeCreate]) -> list[Any]:
        """Create many nodes under existing parents in one transaction.

        All distinct non-root parent paths are resolved in a single query.
        If any of them has no live node, nothing is inserted. Rows are
        inserted in chunks of ``settings.batch_size``.

        Raises:
            ParentNotFoundError: If any parent path has no live node
        """
        if not items:
            return []

        parent_paths = {MaterializedPath(validate_path(item.parent_path, strict_segments=True)) for item in items}
        root = await self.get_root_node(tenant) if any(p.is_root for p in parent_paths) else None
        wanted = [p for p in parent_paths if not p.is_root]

        async with self._writing() as session:
            parents: dict[str, Any] = {}
            if root is not None:
                parents[root.path] = root
            for parent in await self.repository.get_by_paths(session, tenant, wanted):
                parents[parent.path] = parent

            missing = sorted(str(p) for p in wanted if str(p) not in parents)
            if missing:
                raise ParentNotFoundError(missing[0], missing=missing)

            nodes = [
                self._new_node(
                    tenant,
                    name=item.name,
                    parent=parents[item.parent_path],
                    owner=item.owner,
                    metadata=item.metadata,
                )
                for item in items
            ]
            await self.repository.create_many(session, nodes, batch_size=self.settings.batch_size)

        logger.info(
            "Nodes batch created",
            extra=self._log_extra(tenant, "tree.batch_create_nodes", count=len(nodes), parents=len(parents)),
        )
        return nodes


__all__ = [
    "ROOT_METADATA",
    "TreeService",
    "parse_path",
]
