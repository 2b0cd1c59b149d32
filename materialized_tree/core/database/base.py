"""Declarative base and composable column mixins for tree models.

This module provides the foundation every tree model is built on:
- Integer surrogate primary key
- Timestamp tracking (created_at, updated_at)
- Soft delete support (deleted_at, deleted_by)
- Deterministic constraint names

The materialized path columns themselves live in
``core.database.hierarchy.mixins`` because their names are configurable.

Examples:
    Tree model with the default table configuration:
    class TreeNode(Base, IntegerPKMixin, TimestampMixin, SoftDeleteMixin, MaterializedPathMixin):
        __tablename__ = "tree_nodes"
        name: Mapped[str] = mapped_column(String(255))
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

# Consistent naming convention for database constraints
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def utc_now() -> datetime:
    """Timezone-aware current time used for Python-side defaults."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Declarative base with a constraint naming convention.

    Models set __tablename__ explicitly; tree models take it from their
    TableConfig.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class IntegerPKMixin:
    """Integer auto-increment primary key.

    The public identity of a tree node is its ``code``; this surrogate key
    only serves joins and stable ordering.

    Provides:
        id: Auto-incrementing integer primary key
    """

    __allow_unmapped__ = True

    id: Mapped[int] = mapped_column(
        primary_key=True,
        autoincrement=True,
        comment="Auto-incrementing integer primary key",
    )


class TimestampMixin:
    """Timestamp tracking for create and update operations.

    Uses both Python-side defaults (so values are populated before flush on
    every dialect) and database server defaults (for direct SQL inserts).

    Provides:
        created_at: Timestamp of record creation (immutable)
        updated_at: Timestamp of last modification (auto-updates)
    """

    __allow_unmapped__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
        comment="Timestamp of record creation",
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
        nullable=False,
        comment="Timestamp of last update",
    )


class SoftDeleteMixin:
    """Soft delete support.

    Instead of physically removing nodes, sets a deleted_at timestamp. Every
    tree query filters on ``deleted_at IS NULL``; see ``tenancy.live``. Deleted
    rows are never restored.

    Provides:
        deleted_at: Timestamp of deletion (None if not deleted)
        deleted_by: Actor who performed the deletion
        is_deleted: Property to check if record is deleted

    Usage:
        # Query non-deleted records:
        stmt = select(TreeNode).where(TreeNode.deleted_at.is_(None))
    """

    __allow_unmapped__ = True

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
        comment="Timestamp of soft deletion",
    )
    deleted_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Actor who performed the soft deletion",
    )

    @property
    def is_deleted(self) -> bool:
        """Check if this record has been soft-deleted."""
        return self.deleted_at is not None


__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "IntegerPKMixin",
    "SoftDeleteMixin",
    "TimestampMixin",
    "utc_now",
]
