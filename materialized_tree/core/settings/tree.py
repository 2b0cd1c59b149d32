"""Tree table naming and behaviour settings.

TableConfig names the logical table and the configurable columns of the tree
model. It is an explicit, immutable value validated once at construction; a
malformed name raises InvalidConfigError rather than failing later inside a
query.

TreeSettings loads the same names (plus behavioural knobs) from the
environment with the TREE_ prefix.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, fields

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from materialized_tree.core.exceptions import InvalidConfigError

# Portable SQL identifier: letter or underscore, then alphanumerics, max 63 chars (PostgreSQL limit)
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

# Column names owned by the model itself, configurable names must not collide with them
RESERVED_COLUMNS = frozenset(
    {
        "id",
        "code",
        "name",
        "parent_code",
        "metadata",
        "created_at",
        "updated_at",
        "deleted_at",
        "deleted_by",
    }
)


@dataclass(frozen=True, slots=True)
class TableConfig:
    """Names of the tree table and its configurable columns.

    Example:
            config = TableConfig(table_name="org_units", path_column="mpath")
        OrgUnit = build_tree_model(config)

    Raises:
        InvalidConfigError: If a name is empty, not a plain SQL identifier,
            collides with a reserved column or duplicates another column
    """

    table_name: str = "tree_nodes"
    path_column: str = "path"
    tenant_id_column: str = "tenant_id"
    tenant_type_column: str = "tenant_type"
    owner_id_column: str = "owner_id"
    owner_type_column: str = "owner_type"

    def __post_init__(self) -> None:
        for field in fields(self):
            value = getattr(self, field.name)
            if not isinstance(value, str) or not value:
                raise InvalidConfigError(f"{field.name} must be a non-empty string", field=field.name)
            if not IDENTIFIER_PATTERN.match(value):
                raise InvalidConfigError(
                    f"{field.name} is not a valid SQL identifier",
                    field=field.name,
                    value=value,
                )

        columns = self.columns
        reserved = sorted(RESERVED_COLUMNS.intersection(columns))
        if reserved:
            raise InvalidConfigError("Configured column collides with a reserved column", columns=reserved)
        if len(set(columns)) != len(columns):
            raise InvalidConfigError("Configured column names must be distinct", columns=list(columns))

    @property
    def columns(self) -> tuple[str, ...]:
        """The configurable column names."""
        return (
            self.path_column,
            self.tenant_id_column,
            self.tenant_type_column,
            self.owner_id_column,
            self.owner_type_column,
        )


DEFAULT_TABLE_CONFIG = TableConfig()


class TreeSettings(BaseSettings):
    """Tree storage settings.

    Environment variables use TREE_ prefix.
    Example: TREE_TABLE_NAME=org_units, TREE_SOFT_DELETE=false
    """

    # ─────────────────────────────────────────────────────
    # Table naming
    # ─────────────────────────────────────────────────────
    table_name: str = Field(default="tree_nodes", description="Name of the tree table.")
    path_column: str = Field(default="path", description="Column holding the materialized path.")
    tenant_id_column: str = Field(default="tenant_id", description="Column holding the tenant ID.")
    tenant_type_column: str = Field(default="tenant_type", description="Column holding the tenant kind.")
    owner_id_column: str = Field(default="owner_id", description="Column holding the owner ID.")
    owner_type_column: str = Field(default="owner_type", description="Column holding the owner kind.")

    # ─────────────────────────────────────────────────────
    # Behaviour
    # ─────────────────────────────────────────────────────
    root_name: str = Field(
        default="root",
        min_length=1,
        max_length=255,
        description="Name given to lazily created root nodes.",
    )
    soft_delete: bool = Field(
        default=True,
        description="Mark deleted nodes with deleted_at instead of removing rows.",
    )
    batch_size: int = Field(
        default=100,
        ge=1,
        le=10_000,
        description="Rows per INSERT chunk for batch creation.",
    )
    default_page_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Page size used when a paginated query gets no limit.",
    )
    max_page_size: int = Field(
        default=1000,
        ge=1,
        le=100_000,
        description="Upper bound applied to requested page sizes.",
    )

    model_config = SettingsConfigDict(
        env_prefix="TREE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    def table_config(self) -> TableConfig:
        """Build the validated TableConfig for these settings.

        Raises:
            InvalidConfigError: If any table or column name is malformed
        """
        return TableConfig(
            table_name=self.table_name,
            path_column=self.path_column,
            tenant_id_column=self.tenant_id_column,
            tenant_type_column=self.tenant_type_column,
            owner_id_column=self.owner_id_column,
            owner_type_column=self.owner_type_column,
        )


__all__ = [
    "DEFAULT_TABLE_CONFIG",
    "IDENTIFIER_PATTERN",
    "RESERVED_COLUMNS",
    "TableConfig",
    "TreeSettings",
]
