"""Lazy evaluation support for logging.

Tree queries log at DEBUG on every call. Messages built from row counts,
path lists or node codes are only formatted when DEBUG is actually enabled,
so the hot path pays nothing in production.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any


class LazyString:
    """String whose value is computed only when formatted.

    Example:
            logger.debug("Ancestors: %s", LazyString(lambda: [str(p) for p in path.ancestors]))
    """

    __slots__ = ("_func",)

    def __init__(self, func: Callable[[], Any]) -> None:
        self._func = func

    def __str__(self) -> str:
        return str(self._func())

    def __repr__(self) -> str:
        return f"LazyString({self._func!r})"


class LazyLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that evaluates callable messages and arguments lazily.

    Bound context passed at construction is merged into each record's
    ``extra`` so structured formatters emit it as top-level fields.

    Example:
            logger = get_lazy_logger(__name__, component="tree")
        logger.debug(lambda: f"moved subtree of {count} nodes")
        logger.info("Node created", extra={"code": node.code})
    """

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        if self.extra:
            kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs

    def log(self, level: int, msg: Any, *args: Any, **kwargs: Any) -> None:
        """Log message, evaluating callables only if ``level`` is enabled."""
        if not self.isEnabledFor(level):
            return

        if callable(msg):
            msg = msg()
        if args:
            args = tuple(arg() if callable(arg) else arg for arg in args)

        super().log(level, msg, *args, **kwargs)

    def debug(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self.log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("exc_info", True)
        self.log(logging.ERROR, msg, *args, **kwargs)


def get_lazy_logger(name: str, **context: Any) -> LazyLoggerAdapter:
    """Get a logger with lazy evaluation support and optional bound context.

    Args:
        name: Logger name (usually __name__).
        **context: Fields attached to every record from this adapter.

    Returns:
        Logger adapter with lazy evaluation support.
    """
    return LazyLoggerAdapter(logging.getLogger(name), context or {})


def lazy(func: Callable[[], Any]) -> LazyString:
    """Wrap a callable in a LazyString."""
    return LazyString(func)
