"""Database primitives: declarative base, repository, scoping, sessions."""

from __future__ import annotations

from .base import Base, IntegerPKMixin, SoftDeleteMixin, TimestampMixin
from .exceptions import NotFoundError, RepositoryError
from .repository import BaseRepository, SearchResult
from .schema import create_schema, drop_schema
from .session import create_engine_from_settings, create_session_factory, read_session, transaction
from .tenancy import OwnerRef, TenantRef, live, owner_scope, tenant_scope

__all__ = [
    "Base",
    "BaseRepository",
    "IntegerPKMixin",
    "NotFoundError",
    "OwnerRef",
    "RepositoryError",
    "SearchResult",
    "SoftDeleteMixin",
    "TenantRef",
    "TimestampMixin",
    "create_engine_from_settings",
    "create_schema",
    "create_session_factory",
    "drop_schema",
    "live",
    "owner_scope",
    "read_session",
    "tenant_scope",
    "transaction",
]
