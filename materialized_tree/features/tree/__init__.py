"""Materialized path tree feature: model, schemas, repository and service."""

from __future__ import annotations

from .models import TreeNode, build_tree_model
from .repository import TreeNodeRepository
from .schemas import NodeCreate, NodeUpdate, NodeWithChildren, TreeNodeRead
from .service import TreeService

__all__ = [
    "NodeCreate",
    "NodeUpdate",
    "NodeWithChildren",
    "TreeNode",
    "TreeNodeRead",
    "TreeNodeRepository",
    "TreeService",
    "build_tree_model",
]
