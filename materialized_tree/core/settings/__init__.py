"""Pydantic Settings v2 configuration.

Settings are split by domain and loaded from environment variables
(or a .env file in development):
- DatabaseSettings (DB_ prefix): connection URL and pool
- TreeSettings (TREE_ prefix): table naming and tree behaviour
- LoggingSettings (LOG_ prefix): log level and format

Import settings via cached loaders:
    from materialized_tree.core.settings import get_tree_settings

    settings = get_tree_settings()
    config = settings.table_config()
"""

from __future__ import annotations

from .database import DatabaseSettings
from .loader import get_db_settings, get_logging_settings, get_tree_settings
from .logs import LoggingSettings
from .tree import DEFAULT_TABLE_CONFIG, TableConfig, TreeSettings

__all__ = [
    "DEFAULT_TABLE_CONFIG",
    "DatabaseSettings",
    "LoggingSettings",
    "TableConfig",
    "TreeSettings",
    "get_db_settings",
    "get_logging_settings",
    "get_tree_settings",
]
