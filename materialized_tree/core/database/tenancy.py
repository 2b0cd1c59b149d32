"""Tenant and owner scoping for tree models.

Tree data for many tenants lives in one shared table. Each row carries a
tenant scope (kind + id) and an optional owner (kind + id). Both pairs are
handled as tagged references so a kind can never be paired with the wrong id:
- TenantRef: the isolation scope, required on every query
- OwnerRef: polymorphic association to an external entity

The predicate builders below are the only way the repository filters by
tenant or owner, so no query can be built without a tenant scope.

Example:
    tenant = TenantRef(kind="organization", id="acme")
    stmt = select(TreeNode).where(tenant_scope(TreeNode, tenant), live(TreeNode))
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_

if TYPE_CHECKING:
    from sqlalchemy.sql import ColumnElement

# Matches the String(255) columns declared by MaterializedPathMixin
MAX_REF_LENGTH = 255


def _check_ref(cls_name: str, kind: Any, id_: Any) -> None:
    for field_name, value in (("kind", kind), ("id", id_)):
        if not isinstance(value, str) or not value:
            raise ValueError(f"{cls_name}.{field_name} must be a non-empty string")
        if len(value) > MAX_REF_LENGTH:
            raise ValueError(f"{cls_name}.{field_name} exceeds {MAX_REF_LENGTH} characters")


@dataclass(frozen=True, slots=True)
class TenantRef:
    """Tenant scope isolating one logical tree from another.

    Attributes:
        kind: Tenant type (e.g. "organization", "workspace")
        id: Tenant identifier within that kind
    """

    kind: str
    id: str

    def __post_init__(self) -> None:
        _check_ref("TenantRef", self.kind, self.id)

    def as_log_extra(self) -> dict[str, str]:
        return {"tenant_type": self.kind, "tenant_id": self.id}


@dataclass(frozen=True, slots=True)
class OwnerRef:
    """Polymorphic reference to the external entity owning a node.

    Attributes:
        kind: Owner type (e.g. "user", "team")
        id: Owner identifier within that kind
    """

    kind: str
    id: str

    def __post_init__(self) -> None:
        _check_ref("OwnerRef", self.kind, self.id)


def tenant_scope(model: Any, tenant: TenantRef) -> ColumnElement[bool]:
    """Predicate restricting a query to one tenant scope."""
    return and_(model.tenant_type == tenant.kind, model.tenant_id == tenant.id)


def owner_scope(model: Any, owner: OwnerRef) -> ColumnElement[bool]:
    """Predicate restricting a query to nodes owned by ``owner``."""
    return and_(model.owner_type == owner.kind, model.owner_id == owner.id)


def live(model: Any) -> ColumnElement[bool]:
    """Predicate excluding soft-deleted rows."""
    return model.deleted_at.is_(None)


__all__ = [
    "MAX_REF_LENGTH",
    "OwnerRef",
    "TenantRef",
    "live",
    "owner_scope",
    "tenant_scope",
]
