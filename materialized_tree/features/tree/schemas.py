"""Tree node Pydantic schemas.

Provides input schemas for creating and updating nodes, and the read schema
returned by nested queries.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, NamedTuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from materialized_tree.core.database.hierarchy.path import ROOT_PATH, validate_path
from materialized_tree.core.database.tenancy import OwnerRef


class NodeCreate(BaseModel):
    """Schema for one node of a batch creation."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(
        min_length=1,
        max_length=255,
        description="Display name",
    )
    parent_path: str = Field(
        default=ROOT_PATH,
        description="Materialized path of the parent node",
    )
    owner: OwnerRef | None = Field(
        default=None,
        description="Polymorphic owner of the node",
    )
    metadata: dict[str, Any] | None = Field(
        default=None,
        description="Opaque application payload",
    )

    @field_validator("parent_path")
    @classmethod
    def check_parent_path(cls, v: str) -> str:
        return validate_path(v)


class NodeUpdate(BaseModel):
    """Schema for updating the non-structural fields of a node.

    Structural fields (code, path, parent, tenant, timestamps) are not
    accepted; passing any of them fails validation. Only fields explicitly
    set are applied, so ``NodeUpdate(owner=None)`` clears the owner while
    ``NodeUpdate(name="x")`` leaves it untouched.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(
        default=None,
        min_length=1,
        max_length=255,
        description="New display name",
    )
    owner: OwnerRef | None = Field(
        default=None,
        description="New owner, None clears it",
    )
    metadata: dict[str, Any] | None = Field(
        default=None,
        description="Replacement payload",
    )

    @field_validator("name")
    @classmethod
    def name_not_null(cls, v: str | None) -> str | None:
        if v is None:
            raise ValueError("name cannot be cleared")
        return v


class TreeNodeRead(BaseModel):
    """Read schema for a tree node."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    code: str
    name: str
    path: str
    parent_code: str | None = None
    depth: int
    tenant_type: str
    tenant_id: str
    owner_type: str | None = None
    owner_id: str | None = None
    metadata: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("meta", "metadata"),
    )
    created_at: datetime
    updated_at: datetime
    children: list[TreeNodeRead] = Field(default_factory=list)


class NodeWithChildren(NamedTuple):
    """A node, one page of its direct children and the total child count."""

    node: Any
    children: list[Any]
    total: int


__all__ = [
    "NodeCreate",
    "NodeUpdate",
    "NodeWithChildren",
    "TreeNodeRead",
]
