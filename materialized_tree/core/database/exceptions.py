"""Database repository exceptions.

Repository errors are internal to the persistence layer. The tree service
translates them before they reach callers: a scoped NotFoundError surfaces
as UnauthorizedError so a miss never reveals whether a row exists under
another tenant.
"""

from __future__ import annotations

from typing import Any

from materialized_tree.core.exceptions import TreeError


class RepositoryError(TreeError):
    """Base exception for repository operations.

    Raised when a repository operation fails due to programming
    errors, configuration issues, or unexpected states.
    """

    default_type = "repository-error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize repository error.

        Args:
            message: Error description
            details: Additional context about the error
        """
        super().__init__(detail=message, extra=details)

    @property
    def message(self) -> str:
        return self.detail

    @property
    def details(self) -> dict[str, Any]:
        return self.extra


class NotFoundError(RepositoryError):
    """Entity not found in database.

    Attributes:
        model_name: Name of the model class that wasn't found
        identifier: The key/value that was searched for
    """

    default_type = "not-found"

    def __init__(self, model_name: str, identifier: dict[str, Any]):
        """Initialize not found error.

        Args:
            model_name: Name of the model (e.g., "TreeNode")
            identifier: Key-value pairs used in the search (e.g., {"code": "01HZX..."})
        """
        self.model_name = model_name
        self.identifier = identifier

        id_str = ", ".join(f"{k}={v!r}" for k, v in identifier.items())
        super().__init__(f"{model_name} not found with {id_str}", details={"model": model_name, **identifier})

    def __repr__(self) -> str:
        return f"NotFoundError(model={self.model_name!r}, identifier={self.identifier!r})"


__all__ = [
    "NotFoundError",
    "RepositoryError",
]
