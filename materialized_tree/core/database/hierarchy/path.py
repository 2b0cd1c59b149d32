"""Python wrapper for materialized paths with navigation utilities.

A materialized path encodes the full ancestry of a node as a sequence of node
IDs joined by a separator:
- "/" is the root path (depth 0)
- "/01HZX3..." is a direct child of root (depth 1)
- "/01HZX3.../01HZX4..." is a grandchild (depth 2)

Every structural question (ancestor-of, depth, parent, descendants pattern)
is answered from the string alone, without database queries. The repository
layer turns ``prefix_pattern()`` into a single LIKE filter so whole subtrees
are selected, counted or rewritten in one statement.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from materialized_tree.core.database.hierarchy.identifiers import (
    is_valid_node_id,
)
from materialized_tree.core.exceptions import (
    DepthExceedsPathError,
    InvalidPathError,
    InvalidSegmentError,
    NegativeDepthError,
    NoParentError,
    RootHasNoSegmentError,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from typing import Self

PATH_SEPARATOR = "/"
ROOT_PATH = PATH_SEPARATOR


def validate_path(raw: object, *, strict_segments: bool = False) -> str:
    """Validate a raw path string.

    Args:
        raw: Candidate path
        strict_segments: Also require every segment to be a valid node ID

    Returns:
        The path string

    Raises:
        InvalidPathError: If the path is empty, relative, ends with the
            separator (other than root) or has an empty segment
    """
    if not isinstance(raw, str) or raw == "":
        raise InvalidPathError(raw, "path must be a non-empty string")
    if raw == ROOT_PATH:
        return raw
    if not raw.startswith(PATH_SEPARATOR):
        raise InvalidPathError(raw, f"path must start with '{PATH_SEPARATOR}'")
    if raw.endswith(PATH_SEPARATOR):
        raise InvalidPathError(raw, "path must not end with the separator")
    if PATH_SEPARATOR * 2 in raw:
        raise InvalidPathError(raw, "path must not contain empty segments")
    if strict_segments:
        for segment in raw[1:].split(PATH_SEPARATOR):
            if not is_valid_node_id(segment):
                raise InvalidPathError(raw, f"segment {segment!r} is not a node ID")
    return raw


class MaterializedPath:
    """Immutable materialized path value.

    Compares equal to plain strings with the same content and hashes like
    them, so it can be used directly as a dict key next to raw column values.

    Example:
        >>> path = MaterializedPath("/A/B/C")
        >>> path.depth
        3
        >>> path.parent()
        MaterializedPath('/A/B')
        >>> path.segments
        ['A', 'B', 'C']
        >>> MaterializedPath("/A").contains(path)
        True
        >>> path / "D"
        MaterializedPath('/A/B/C/D')

    Note:
        - ``contains`` is strict: a path never contains itself
        - Root contains every non-root path
    """

    __slots__ = ("_path", "_segments")
    _path: str
    _segments: tuple[str, ...]

    def __init__(self, path: str | MaterializedPath = ROOT_PATH) -> None:
        """Initialize from a string or another MaterializedPath.

        Raises:
            InvalidPathError: If the string is not a well-formed path
        """
        if isinstance(path, MaterializedPath):
            self._path = path._path
            self._segments = path._segments
            return
        self._path = validate_path(path)
        self._segments = tuple(self._path[1:].split(PATH_SEPARATOR)) if self._path != ROOT_PATH else ()

    @classmethod
    def root(cls) -> Self:
        """Return the root path."""
        return cls(ROOT_PATH)

    @classmethod
    def from_segments(cls, *segments: str) -> Self:
        """Build a path from individual segments.

        Example:
            >>> MaterializedPath.from_segments("A", "B")
            MaterializedPath('/A/B')
            >>> MaterializedPath.from_segments()
            MaterializedPath('/')
        """
        path = cls.root()
        for segment in segments:
            path = path.append(segment)
        return path

    @property
    def is_root(self) -> bool:
        return self._path == ROOT_PATH

    @property
    def depth(self) -> int:
        """Number of segments (0 for root)."""
        return len(self._segments)

    @property
    def segments(self) -> list[str]:
        """Segments from shallowest to deepest (empty for root)."""
        return list(self._segments)

    @property
    def ancestors(self) -> list[MaterializedPath]:
        """Strict non-root ancestors, ordered from shallowest to parent.

        Example:
            >>> [str(a) for a in MaterializedPath("/A/B/C").ancestors]
            ['/A', '/A/B']
        """
        return [self.ancestor_at_depth(depth) for depth in range(1, self.depth)]

    def parent(self) -> MaterializedPath:
        """Return the parent path.

        Raises:
            NoParentError: If this is the root path
        """
        if self.is_root:
            raise NoParentError(path=self._path)
        return MaterializedPath.from_segments(*self._segments[:-1])

    def last_segment(self) -> str:
        """Return the deepest segment (the node's own code).

        Raises:
            RootHasNoSegmentError: If this is the root path
        """
        if self.is_root:
            raise RootHasNoSegmentError
        return self._segments[-1]

    def append(self, segment: str) -> MaterializedPath:
        """Return a child path with ``segment`` appended.

        Raises:
            InvalidSegmentError: If the segment is empty or contains the separator
        """
        if not isinstance(segment, str) or segment == "":
            raise InvalidSegmentError(segment, "segment must be a non-empty string")
        if PATH_SEPARATOR in segment:
            raise InvalidSegmentError(segment, f"segment cannot contain '{PATH_SEPARATOR}'")
        if self.is_root:
            return MaterializedPath(f"{PATH_SEPARATOR}{segment}")
        return MaterializedPath(f"{self._path}{PATH_SEPARATOR}{segment}")

    def contains(self, other: str | MaterializedPath) -> bool:
        """Check if this path is a strict ancestor of ``other``.

        Example:
            >>> MaterializedPath("/A/B").contains("/A/B/C")
            True
            >>> MaterializedPath("/A/B").contains("/A/B")
            False
            >>> MaterializedPath("/A/B").contains("/A/BC")
            False
            >>> MaterializedPath("/").contains("/A")
            True
        """
        sub = _coerce(other)
        if self.is_root:
            return not sub.is_root
        if sub.is_root:
            return False
        return sub._path.startswith(self._path + PATH_SEPARATOR)

    def is_descendant_of(self, ancestor: str | MaterializedPath) -> bool:
        return _coerce(ancestor).contains(self)

    def is_direct_parent_of(self, child: str | MaterializedPath) -> bool:
        child_path = _coerce(child)
        if child_path.is_root:
            return False
        return child_path.parent() == self

    def is_sibling_of(self, other: str | MaterializedPath) -> bool:
        """Check if both paths are distinct children of the same parent."""
        other_path = _coerce(other)
        if self.is_root or other_path.is_root or self == other_path:
            return False
        return self.parent() == other_path.parent()

    def ancestor_at_depth(self, depth: int) -> MaterializedPath:
        """Return the ancestor path at ``depth``.

        Returns root for depth 0 and the path itself for depth == self.depth.

        Raises:
            NegativeDepthError: If depth < 0
            DepthExceedsPathError: If depth > self.depth
        """
        if depth < 0:
            raise NegativeDepthError(depth)
        if depth > self.depth:
            raise DepthExceedsPathError(depth, self.depth)
        if depth == 0:
            return MaterializedPath.root()
        if depth == self.depth:
            return self
        return MaterializedPath.from_segments(*self._segments[:depth])

    def prefix_pattern(self) -> str:
        """SQL LIKE pattern matching every strict descendant of this path.

        Example:
            >>> MaterializedPath("/A/B").prefix_pattern()
            '/A/B/%'
            >>> MaterializedPath("/").prefix_pattern()
            '/%'
        """
        if self.is_root:
            return f"{PATH_SEPARATOR}%"
        return f"{self._path}{PATH_SEPARATOR}%"

    def rebase(
        self,
        old_prefix: str | MaterializedPath,
        new_prefix: str | MaterializedPath,
    ) -> MaterializedPath:
        """Replace ``old_prefix`` with ``new_prefix`` at the start of this path.

        This is the Python-side counterpart of the subtree rewrite executed
        by a move: ``/a/N/x`` rebased from ``/a/N`` to ``/b/N`` is ``/b/N/x``.

        Raises:
            InvalidPathError: If this path is neither old_prefix nor below it
        """
        old = _coerce(old_prefix)
        new = _coerce(new_prefix)
        if self == old:
            return new
        if not old.contains(self):
            raise InvalidPathError(self._path, f"path is not under {old}")
        return MaterializedPath.from_segments(*new._segments, *self._segments[old.depth :])

    def __truediv__(self, segment: str) -> MaterializedPath:
        return self.append(segment)

    def __iter__(self) -> Iterator[str]:
        return iter(self._segments)

    def __len__(self) -> int:
        return self.depth

    def __str__(self) -> str:
        """Return string representation for database storage."""
        return self._path

    def __repr__(self) -> str:
        return f"MaterializedPath({self._path!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, MaterializedPath):
            return self._path == other._path
        if isinstance(other, str):
            return self._path == other
        return False

    def __hash__(self) -> int:
        return hash(self._path)

    def __lt__(self, other: MaterializedPath) -> bool:
        return self._path < _coerce(other)._path


def _coerce(value: str | MaterializedPath) -> MaterializedPath:
    return value if isinstance(value, MaterializedPath) else MaterializedPath(value)


__all__ = [
    "PATH_SEPARATOR",
    "ROOT_PATH",
    "MaterializedPath",
    "validate_path",
]
