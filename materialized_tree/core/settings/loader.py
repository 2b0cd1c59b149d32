"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the
process. Components never read these implicitly at import time: services and
engines accept settings objects, and fall back to these loaders only when the
caller passes none.

Testing:
    In tests, clear the cache to force reload:
    get_tree_settings.cache_clear()

    Or pass explicit values:
    settings = TreeSettings(table_name="org_units")
"""

from __future__ import annotations

from functools import lru_cache

from .database import DatabaseSettings
from .logs import LoggingSettings
from .tree import TreeSettings


@lru_cache(maxsize=1)
def get_db_settings() -> DatabaseSettings:
    """Get cached database settings.

    Returns:
        Validated and frozen DatabaseSettings instance.
    """
    return DatabaseSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


@lru_cache(maxsize=1)
def get_tree_settings() -> TreeSettings:
    """Get cached tree settings.

    Returns:
        Validated and frozen TreeSettings instance.
    """
    return TreeSettings()
