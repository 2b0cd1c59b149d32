"""Materialized path trees for async SQLAlchemy.

Stores tree-shaped data (organizational hierarchies, taxonomies, nested
resources) in a relational table, encoding each node's ancestry as a
materialized path string with per-tenant isolation.

Example:
    from materialized_tree import TenantRef, TreeService, create_session_factory

    service = TreeService(create_session_factory(engine))
    node = await service.create_node(TenantRef("organization", "acme"), "Engineering", "/")
"""

from __future__ import annotations

from materialized_tree.core.database import (
    OwnerRef,
    SearchResult,
    TenantRef,
    create_engine_from_settings,
    create_schema,
    create_session_factory,
)
from materialized_tree.core.database.hierarchy import MaterializedPath, NodeIDSource, new_node_id
from materialized_tree.core.exceptions import TreeError
from materialized_tree.core.settings import TableConfig, TreeSettings
from materialized_tree.features.tree import NodeCreate, NodeUpdate, TreeNode, TreeService, build_tree_model

__version__ = "0.1.0"

__all__ = [
    "MaterializedPath",
    "NodeCreate",
    "NodeIDSource",
    "NodeUpdate",
    "OwnerRef",
    "SearchResult",
    "TableConfig",
    "TenantRef",
    "TreeError",
    "TreeNode",
    "TreeService",
    "TreeSettings",
    "build_tree_model",
    "create_engine_from_settings",
    "create_schema",
    "create_session_factory",
    "new_node_id",
]
