"""Exception classes raised by the tree library.

Every failure surfaced to callers derives from TreeError. Errors carry a
human-readable ``detail``, a stable ``type`` identifier and an ``extra`` dict
with structured context, so they can be logged or mapped onto an API error
envelope without string parsing.

Path algebra errors are local validation failures and also subclass
ValueError. Orchestrator errors are raised after the surrounding transaction
has been rolled back.
"""

from __future__ import annotations

from typing import Any


class TreeError(Exception):
    """Base exception for all tree operations.

    Attributes:
        detail: Human-readable error message.
        type: Stable error type identifier (kebab-case).
        extra: Additional context about the error.

    Example:
            raise TreeError(
            detail="Something went wrong",
            type="tree-error",
            extra={"path": "/01HZX..."},
        )
    """

    default_type = "tree-error"

    def __init__(
        self,
        detail: str,
        type: str | None = None,  # noqa: A002
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize tree error.

        Args:
            detail: Human-readable error message.
            type: Error type identifier (defaults to the class's default_type).
            extra: Additional context about the error.
        """
        self.detail = detail
        self.type = type or self.default_type
        self.extra = extra or {}
        super().__init__(detail)

    def __str__(self) -> str:
        """Format error message with context."""
        if self.extra:
            extra_str = ", ".join(f"{k}={v!r}" for k, v in self.extra.items())
            return f"{self.detail} ({extra_str})"
        return self.detail


# ============================================================================
# Path algebra
# ============================================================================


class PathError(TreeError, ValueError):
    """Base class for invalid path or segment values."""

    default_type = "path-error"


class InvalidPathError(PathError):
    """Raised when a raw string is not a well-formed materialized path."""

    default_type = "invalid-path"

    def __init__(self, path: Any, reason: str) -> None:
        super().__init__(
            detail=f"Invalid materialized path: {reason}",
            extra={"path": path},
        )


class InvalidSegmentError(PathError):
    """Raised when a segment is empty, contains the separator or is not a node ID."""

    default_type = "invalid-segment"

    def __init__(self, segment: Any, reason: str) -> None:
        super().__init__(
            detail=f"Invalid path segment: {reason}",
            extra={"segment": segment},
        )


class NoParentError(PathError):
    """Raised when asking for the parent of the root path."""

    default_type = "no-parent"

    def __init__(self, detail: str = "Root path has no parent", **extra: Any) -> None:
        super().__init__(detail=detail, extra=extra)


class RootHasNoParentError(NoParentError):
    """Raised when asking for the parent node of a root node."""

    default_type = "root-has-no-parent"

    def __init__(self, code: str | None = None) -> None:
        super().__init__("Root node has no parent", code=code)


class RootHasNoSegmentError(PathError):
    """Raised when asking for the last segment of the root path."""

    default_type = "root-has-no-segment"

    def __init__(self) -> None:
        super().__init__(detail="Root path has no segment")


class NegativeDepthError(PathError):
    """Raised when a negative depth is requested."""

    default_type = "negative-depth"

    def __init__(self, depth: int) -> None:
        super().__init__(
            detail=f"Depth cannot be negative: {depth}",
            extra={"depth": depth},
        )


class DepthExceedsPathError(PathError):
    """Raised when the requested depth is deeper than the path itself."""

    default_type = "depth-exceeds-path"

    def __init__(self, depth: int, path_depth: int) -> None:
        super().__init__(
            detail=f"Requested depth {depth} is greater than path depth {path_depth}",
            extra={"depth": depth, "path_depth": path_depth},
        )


# ============================================================================
# Orchestrator
# ============================================================================


class ParentNotFoundError(TreeError):
    """Raised when a parent path does not resolve to a live node in the tenant."""

    default_type = "parent-not-found"

    def __init__(self, parent_path: str, **extra: Any) -> None:
        super().__init__(
            detail=f"Parent node not found for path {parent_path}",
            extra={"parent_path": parent_path, **extra},
        )


class InvalidMoveError(TreeError):
    """Raised when a move would create a cycle or relocate the root."""

    default_type = "invalid-move"

    def __init__(self, detail: str, path: str, new_parent_path: str) -> None:
        super().__init__(
            detail=detail,
            extra={"path": path, "new_parent_path": new_parent_path},
        )


class HasDescendantsError(TreeError):
    """Raised when deleting a node with descendants without cascade."""

    default_type = "has-descendants"

    def __init__(self, path: str, count: int) -> None:
        super().__init__(
            detail="Cannot delete node with descendants, pass cascade=True",
            extra={"path": path, "descendants": count},
        )


class UnauthorizedError(TreeError):
    """Raised when a scoped lookup misses.

    The library deliberately does not distinguish "does not exist" from
    "exists under another tenant".
    """

    default_type = "unauthorized"

    def __init__(self, detail: str = "Unauthorized access", **extra: Any) -> None:
        super().__init__(detail=detail, extra=extra)


class InvalidConfigError(TreeError):
    """Raised when table naming or tree settings are malformed."""

    default_type = "invalid-config"

    def __init__(self, detail: str, **extra: Any) -> None:
        super().__init__(detail=detail, extra=extra)


__all__ = [
    "DepthExceedsPathError",
    "HasDescendantsError",
    "InvalidConfigError",
    "InvalidMoveError",
    "InvalidPathError",
    "InvalidSegmentError",
    "NegativeDepthError",
    "NoParentError",
    "ParentNotFoundError",
    "PathError",
    "RootHasNoParentError",
    "RootHasNoSegmentError",
    "TreeError",
    "UnauthorizedError",
]
