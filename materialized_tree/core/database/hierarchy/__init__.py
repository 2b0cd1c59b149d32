"""Materialized path hierarchy: path algebra, node identifiers, model mixin."""

from __future__ import annotations

from .identifiers import NodeID, NodeIDSource, is_valid_node_id, new_node_id, node_id_timestamp, validate_node_id
from .mixins import MaterializedPathMixin
from .path import PATH_SEPARATOR, ROOT_PATH, MaterializedPath, validate_path

__all__ = [
    "PATH_SEPARATOR",
    "ROOT_PATH",
    "MaterializedPath",
    "MaterializedPathMixin",
    "NodeID",
    "NodeIDSource",
    "is_valid_node_id",
    "new_node_id",
    "node_id_timestamp",
    "validate_node_id",
    "validate_path",
]
