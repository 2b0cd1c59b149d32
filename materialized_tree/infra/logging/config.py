"""Logging configuration setup.

Configures the standard library logging tree with dictConfig:
- All handlers on the root logger (library loggers propagate)
- JSONL output for machine parsing, or plain text for local development
- A separate level for ``sqlalchemy.engine`` so SQL echo can be tuned
  independently of application logs

The library itself never configures logging on import. Applications call
``setup_logging()`` once at startup.
"""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from materialized_tree.core.settings.logs import LoggingSettings

logger = logging.getLogger(__name__)
_LOGGING_INITIALIZED = False

TEXT_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    log_settings: LoggingSettings | None = None,
    *,
    force: bool = False,
    **configure_kwargs: Any,
) -> None:
    """Ensure logging is configured once across entrypoints.

    Args:
        log_settings: Optional logging settings instance. If omitted, settings
            are loaded via get_logging_settings().
        force: Reconfigure logging even if it was already initialized.
        **configure_kwargs: Explicit overrides for configure_logging().
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED and not force:
        return

    settings_obj = log_settings
    if settings_obj is None:
        from materialized_tree.core.settings import get_logging_settings

        settings_obj = get_logging_settings()

    log_config: dict[str, Any] = settings_obj.to_logging_kwargs()
    if configure_kwargs:
        log_config = {**log_config, **configure_kwargs}

    configure_logging(**log_config)
    _LOGGING_INITIALIZED = True


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    console_enabled: bool = True,
    sqlalchemy_level: str = "WARNING",
    file_path: str | Path | None = None,
    service_name: str = "materialized-tree",
    capture_warnings: bool = True,
) -> dict[str, Any]:
    """Configure logging with dictConfig.

    Args:
        log_level: Root logger level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_logs: Enable JSONL (JSON Lines) structured logging.
        console_enabled: Enable console/stderr logging.
        sqlalchemy_level: Level for the ``sqlalchemy.engine`` logger.
        file_path: Path to log file. None disables file logging.
        service_name: Static ``service`` field added to JSON records.
        capture_warnings: Forward Python warnings to logging system.

    Returns:
        The dictConfig dict that was applied.

    Example:
            from materialized_tree.core.settings import get_logging_settings
        configure_logging(**get_logging_settings().to_logging_kwargs())
    """
    if capture_warnings:
        logging.captureWarnings(True)

    formatter = "json" if json_logs else "text"
    handlers: dict[str, Any] = {}

    if console_enabled:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "formatter": formatter,
            "stream": "ext://sys.stderr",
        }

    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": formatter,
            "filename": str(path),
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "encoding": "utf-8",
        }

    logging_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "materialized_tree.infra.logging.formatters.JSONFormatter",
                "static": {"service": service_name},
            },
            "text": {"format": TEXT_FORMAT, "datefmt": TEXT_DATEFMT},
        },
        "handlers": handlers,
        "loggers": {
            "sqlalchemy.engine": {"level": sqlalchemy_level.upper()},
        },
        "root": {
            "level": log_level.upper(),
            "handlers": list(handlers),
        },
    }

    logging.config.dictConfig(logging_config)
    logger.debug("Logging configured", extra={"json_logs": json_logs, "handlers": list(handlers)})
    return logging_config
