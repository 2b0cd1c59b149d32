"""Tree node database models.

Provides the TreeNode model for the default table configuration and
``build_tree_model`` for tables with custom names. Every model carries:
- Identity (surrogate id, node code)
- Materialized path and parent linkage
- Tenant scope and optional polymorphic owner
- Opaque JSON metadata
- Timestamps and soft-delete markers
"""

from __future__ import annotations

import threading
from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from materialized_tree.core.database.base import Base, IntegerPKMixin, SoftDeleteMixin, TimestampMixin
from materialized_tree.core.database.hierarchy.mixins import MaterializedPathMixin
from materialized_tree.core.exceptions import InvalidConfigError
from materialized_tree.core.settings.tree import DEFAULT_TABLE_CONFIG, TableConfig


class TreeNodeColumnsMixin:
    """Non-structural columns shared by every tree model."""

    __allow_unmapped__ = True

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Display name",
    )
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
        default=None,
        comment="Opaque application payload",
    )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} code={self.code!r} path={self.path!r} name={self.name!r}>"  # type: ignore[attr-defined]


class TreeNode(Base, IntegerPKMixin, TimestampMixin, SoftDeleteMixin, TreeNodeColumnsMixin, MaterializedPathMixin):
    """Tree node stored in the default ``tree_nodes`` table.

    Example:
        node = TreeNode(
            code=code,
            name="Engineering",
            path=str(MaterializedPath.root() / code),
            parent_code=root.code,
            tenant_type="organization",
            tenant_id="acme",
        )
    """

    __tablename__ = DEFAULT_TABLE_CONFIG.table_name
    __tree_config__ = DEFAULT_TABLE_CONFIG


_models: dict[tuple[TableConfig, type[Any]], type[Any]] = {(DEFAULT_TABLE_CONFIG, Base): TreeNode}
_models_lock = threading.Lock()


def build_tree_model(config: TableConfig, *, base: type[Any] = Base) -> type[Any]:
    """Return the mapped tree model for ``config``.

    Models are created once per (config, base) pair and reused afterwards.
    The default configuration maps to TreeNode.

    Args:
        config: Validated table configuration
        base: Declarative base to register the model on

    Raises:
        InvalidConfigError: If another model already owns the table name

    Example:
            OrgUnit = build_tree_model(TableConfig(table_name="org_units", path_column="mpath"))
        service = TreeService(session_factory, model=OrgUnit)
    """
    key = (config, base)
    with _models_lock:
        model = _models.get(key)
        if model is not None:
            return model

        if config.table_name in base.metadata.tables:
            raise InvalidConfigError(
                "Table is already mapped with a different configuration",
                table=config.table_name,
            )

        class_name = "".join(part.title() for part in config.table_name.split("_") if part) + "Node"
        model = type(
            class_name,
            (base, IntegerPKMixin, TimestampMixin, SoftDeleteMixin, TreeNodeColumnsMixin, MaterializedPathMixin),
            {
                "__module__": __name__,
                "__tablename__": config.table_name,
                "__tree_config__": config,
            },
        )
        _models[key] = model
        return model


__all__ = [
    "TreeNode",
    "TreeNodeColumnsMixin",
    "build_tree_model",
]
