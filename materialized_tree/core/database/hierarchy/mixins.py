"""Mixin for models storing a materialized path.

Adds the path, parent linkage, tenant and owner columns to a declarative
model. Column names come from the model's ``__tree_config__`` (a
TableConfig), while the Python attribute names stay fixed, so repository and
service code is identical for every configured table.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from sqlalchemy import Index, String, UniqueConstraint, and_, or_, text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from materialized_tree.core.database.hierarchy.identifiers import NODE_ID_LENGTH
from materialized_tree.core.database.hierarchy.path import MaterializedPath
from materialized_tree.core.database.tenancy import OwnerRef, TenantRef
from materialized_tree.core.exceptions import InvalidPathError
from materialized_tree.core.settings.tree import DEFAULT_TABLE_CONFIG, TableConfig

if TYPE_CHECKING:
    from sqlalchemy.sql import ColumnElement

# Room for ~75 levels of 26-character segments
PATH_LENGTH = 2048

LIVE_ROWS = "deleted_at IS NULL"


class MaterializedPathMixin:
    """Mixin for tree nodes addressed by a materialized path.

    The model must also provide ``deleted_at`` (SoftDeleteMixin): uniqueness
    of (tenant, path) only applies to live rows, so a soft-deleted root or
    subtree never blocks re-creating the same path.

    Example:
        >>> class Category(Base, IntegerPKMixin, SoftDeleteMixin, MaterializedPathMixin):
        ...     __tablename__ = "categories"
        ...     __tree_config__ = TableConfig(table_name="categories")
        ...     name: Mapped[str] = mapped_column(String(255))
        >>>
        >>> node.materialized_path.depth
        2
        >>> node.tenant
        TenantRef(kind='org', id='acme')

    Note:
        - Properties never query the database
        - ``__tablename__`` must match ``__tree_config__.table_name``
    """

    __allow_unmapped__ = True

    __tree_config__: ClassVar[TableConfig] = DEFAULT_TABLE_CONFIG

    @declared_attr
    def code(cls) -> Mapped[str]:
        return mapped_column(
            "code",
            String(NODE_ID_LENGTH),
            nullable=False,
            comment="Node ID, also the last path segment",
        )

    @declared_attr
    def path(cls) -> Mapped[str]:
        return mapped_column(
            cls.__tree_config__.path_column,
            String(PATH_LENGTH),
            nullable=False,
            comment="Materialized path from root to this node",
        )

    @declared_attr
    def parent_code(cls) -> Mapped[str | None]:
        return mapped_column(
            "parent_code",
            String(NODE_ID_LENGTH),
            nullable=True,
            comment="Code of the parent node, NULL for the root",
        )

    @declared_attr
    def tenant_id(cls) -> Mapped[str]:
        return mapped_column(
            cls.__tree_config__.tenant_id_column,
            String(255),
            nullable=False,
            comment="Tenant identifier for data isolation",
        )

    @declared_attr
    def tenant_type(cls) -> Mapped[str]:
        return mapped_column(
            cls.__tree_config__.tenant_type_column,
            String(255),
            nullable=False,
            comment="Tenant kind for data isolation",
        )

    @declared_attr
    def owner_id(cls) -> Mapped[str | None]:
        return mapped_column(
            cls.__tree_config__.owner_id_column,
            String(255),
            nullable=True,
            comment="Owning entity identifier",
        )

    @declared_attr
    def owner_type(cls) -> Mapped[str | None]:
        return mapped_column(
            cls.__tree_config__.owner_type_column,
            String(255),
            nullable=True,
            comment="Owning entity kind",
        )

    @declared_attr.directive
    def __table_args__(cls) -> tuple[Any, ...]:
        config = cls.__tree_config__
        table = config.table_name
        tenant = (config.tenant_type_column, config.tenant_id_column)
        return (
            UniqueConstraint(*tenant, "code", name=f"uq_{table}_tenant_code"),
            Index(
                f"ux_{table}_tenant_path_live",
                *tenant,
                config.path_column,
                unique=True,
                sqlite_where=text(LIVE_ROWS),
                postgresql_where=text(LIVE_ROWS),
            ),
            Index(f"ix_{table}_path", config.path_column),
            Index(f"ix_{table}_tenant_parent", *tenant, "parent_code"),
            Index(f"ix_{table}_owner", config.owner_type_column, config.owner_id_column),
        )

    @classmethod
    def subtree_clause(cls, path: MaterializedPath, *, include_self: bool = False) -> ColumnElement[bool]:
        """Predicate matching the strict descendants of ``path``.

        Args:
            path: Subtree root
            include_self: Also match the row at ``path``

        Example:
            >>> stmt = select(TreeNode).where(TreeNode.subtree_clause(MaterializedPath("/A")))
        """
        path_col: Any = cls.path
        descendants = path_col.like(path.prefix_pattern())
        if path.is_root:
            # "/%" also matches "/" itself
            descendants = and_(descendants, path_col != str(path))
        if include_self:
            return or_(path_col == str(path), descendants)
        return descendants

    @property
    def materialized_path(self) -> MaterializedPath:
        return MaterializedPath(self.path)

    @property
    def depth(self) -> int:
        """Depth in the tree (0 for root).

        Example:
            >>> node.path = "/01HZX3.../01HZX4..."
            >>> node.depth
            2
        """
        return self.materialized_path.depth

    @property
    def is_root(self) -> bool:
        return self.parent_code is None

    @property
    def segments(self) -> list[str]:
        return self.materialized_path.segments

    @property
    def tenant(self) -> TenantRef:
        return TenantRef(kind=self.tenant_type, id=self.tenant_id)

    @tenant.setter
    def tenant(self, value: TenantRef) -> None:
        self.tenant_type = value.kind
        self.tenant_id = value.id

    @property
    def owner(self) -> OwnerRef | None:
        """Owner reference, or None when either half of the pair is unset."""
        if self.owner_type is None or self.owner_id is None:
            return None
        return OwnerRef(kind=self.owner_type, id=self.owner_id)

    @owner.setter
    def owner(self, value: OwnerRef | None) -> None:
        self.owner_type = value.kind if value is not None else None
        self.owner_id = value.id if value is not None else None

    def check_invariants(self, parent: Any | None) -> None:
        """Validate the node's structural fields against its parent row.

        Checks that:
        - root-ness agrees between path, parent_code and ``parent``
        - a non-root path ends with the node's own code
        - parent_code is the parent's code and parent(path) is the parent's path
        - node and parent share one tenant scope

        Args:
            parent: The parent row, or None when the node is a root

        Raises:
            InvalidPathError: If any structural field is inconsistent
        """
        path = self.materialized_path
        if path.is_root != (self.parent_code is None) or path.is_root != (parent is None):
            raise InvalidPathError(self.path, "root path, empty parent_code and missing parent must go together")
        if parent is None:
            return
        if path.last_segment() != self.code:
            raise InvalidPathError(self.path, f"last segment does not match code {self.code!r}")
        if self.parent_code != parent.code:
            raise InvalidPathError(self.path, f"parent_code does not match parent code {parent.code!r}")
        if path.parent() != parent.path:
            raise InvalidPathError(self.path, f"parent path is not {parent.path!r}")
        if self.tenant != parent.tenant:
            raise InvalidPathError(self.path, "parent belongs to another tenant")


__all__ = [
    "PATH_LENGTH",
    "MaterializedPathMixin",
]
