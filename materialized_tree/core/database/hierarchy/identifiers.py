"""Node identifiers used as primary codes and path segments.

A node ID is a 26-character Crockford base32 string encoding 128 bits:
a 48-bit Unix timestamp in milliseconds followed by 80 random bits (the
ULID layout). Benefits:
    - Time-sortable: IDs created later are lexicographically greater
    - Fixed length: safe to store in VARCHAR(26)
    - Path-safe: the alphabet never contains the path separator
    - Globally unique: 80 bits of randomness per millisecond

Within a single NodeIDSource, IDs are strictly increasing even when many are
generated in the same millisecond: the random part of the previous ID is
incremented instead of being redrawn.

Example:
    from materialized_tree.core.database.hierarchy.identifiers import (
        new_node_id,
        is_valid_node_id,
        node_id_timestamp,
    )

    id1 = new_node_id()
    id2 = new_node_id()
    assert id1 < id2
    assert is_valid_node_id(id1)
    created_at = node_id_timestamp(id1)
"""

from __future__ import annotations

import re
import secrets
import threading
import time
from datetime import UTC, datetime

from materialized_tree.core.exceptions import InvalidSegmentError

# Crockford base32, excludes I, L, O and U
CROCKFORD_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
NODE_ID_LENGTH = 26
NODE_ID_PATTERN = re.compile(r"[0-7][0-9A-HJKMNP-TV-Z]{25}")

_TIMESTAMP_BITS = 48
_RANDOM_BITS = 80
_MAX_TIMESTAMP = (1 << _TIMESTAMP_BITS) - 1
_MAX_RANDOM = (1 << _RANDOM_BITS) - 1

NodeID = str


def _encode(value: int) -> str:
    """Encode a 128-bit integer as 26 Crockford base32 characters."""
    chars = []
    for _ in range(NODE_ID_LENGTH):
        chars.append(CROCKFORD_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


def _decode(value: str) -> int:
    result = 0
    for char in value:
        result = (result << 5) | CROCKFORD_ALPHABET.index(char)
    return result


class NodeIDSource:
    """Thread-safe generator of monotonic node IDs.

    Each source remembers the last timestamp and random component it issued.
    When the clock has not advanced (or went backwards), the previous random
    component is incremented, so IDs from one source never collide and never
    decrease.

    Example:
            source = NodeIDSource()
        ids = [source.new_id() for _ in range(1000)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 1000
    """

    __slots__ = ("_last_ms", "_last_random", "_lock")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_ms = -1
        self._last_random = 0

    def new_id(self) -> NodeID:
        """Generate a new node ID.

        Returns:
            26-character Crockford base32 string
        """
        with self._lock:
            now_ms = int(time.time() * 1000)
            if now_ms <= self._last_ms:
                now_ms = self._last_ms
                random_part = self._last_random + 1
                if random_part > _MAX_RANDOM:
                    # Random space for this millisecond is exhausted; borrow the next one
                    now_ms += 1
                    random_part = secrets.randbits(_RANDOM_BITS)
            else:
                random_part = secrets.randbits(_RANDOM_BITS)

            if now_ms > _MAX_TIMESTAMP:
                raise OverflowError("Node ID timestamp exceeds 48 bits")

            self._last_ms = now_ms
            self._last_random = random_part

        return _encode((now_ms << _RANDOM_BITS) | random_part)

    __call__ = new_id


_default_source = NodeIDSource()


def new_node_id() -> NodeID:
    """Generate a node ID from the process-wide default source.

    Returns:
        26-character Crockford base32 string
    """
    return _default_source.new_id()


def is_valid_node_id(value: object) -> bool:
    """Check whether a value is structurally a node ID.

    Only the format is checked (length, alphabet, timestamp range); no store
    lookup is performed.
    """
    return isinstance(value, str) and NODE_ID_PATTERN.fullmatch(value) is not None


def validate_node_id(value: object) -> NodeID:
    """Validate a node ID and return it.

    Raises:
        InvalidSegmentError: If the value is not a structurally valid node ID
    """
    if not is_valid_node_id(value):
        raise InvalidSegmentError(
            value,
            f"expected {NODE_ID_LENGTH} Crockford base32 characters",
        )
    return str(value)


def node_id_timestamp(value: str) -> datetime:
    """Extract the creation timestamp encoded in a node ID.

    Args:
        value: Valid node ID

    Returns:
        Timezone-aware UTC datetime with millisecond precision

    Raises:
        InvalidSegmentError: If value is not a valid node ID
    """
    validate_node_id(value)
    timestamp_ms = _decode(value) >> _RANDOM_BITS
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)


__all__ = [
    "CROCKFORD_ALPHABET",
    "NODE_ID_LENGTH",
    "NODE_ID_PATTERN",
    "NodeID",
    "NodeIDSource",
    "is_valid_node_id",
    "new_node_id",
    "node_id_timestamp",
    "validate_node_id",
]
