"""Logging infrastructure: dictConfig setup, JSONL formatter, lazy logger."""

from __future__ import annotations

from .config import configure_logging, setup_logging
from .formatters import JSONFormatter
from .lazy import LazyLoggerAdapter, LazyString, get_lazy_logger, lazy

__all__ = [
    "JSONFormatter",
    "LazyLoggerAdapter",
    "LazyString",
    "configure_logging",
    "get_lazy_logger",
    "lazy",
    "setup_logging",
]
