"""Unit tests for logging configuration, formatting and lazy evaluation."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from materialized_tree.core.settings import LoggingSettings
from materialized_tree.infra.logging import (
    JSONFormatter,
    LazyLoggerAdapter,
    configure_logging,
    get_lazy_logger,
    lazy,
    setup_logging,
)


def _record(msg: str = "Node moved", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="materialized_tree.features.tree.service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root_logger():
    """Restore root logger handlers and level after dictConfig tests."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    sa_level = logging.getLogger("sqlalchemy.engine").level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(sa_level)
    logging.captureWarnings(False)


@pytest.mark.unit
class TestJSONFormatter:
    """Test suite for JSONFormatter."""

    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "materialized_tree.features.tree.service"
        assert data["message"] == "Node moved"
        assert data["timestamp"].endswith("Z")

    def test_extra_fields_become_top_level(self):
        data = json.loads(JSONFormatter().format(_record(tenant_id="acme", moved=3)))

        assert data["tenant_id"] == "acme"
        assert data["moved"] == 3
        assert "pathname" not in data

    def test_static_fields(self):
        data = json.loads(JSONFormatter(static={"service": "tree"}).format(_record()))

        assert data["service"] == "tree"

    def test_exception_stays_on_one_line(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()

        output = JSONFormatter().format(record)

        assert "\n" not in output
        assert "RuntimeError: boom" in json.loads(output)["exception"]

    def test_non_serializable_extra(self):
        data = json.loads(JSONFormatter().format(_record(obj=object())))

        assert data["obj"].startswith("<object object")


@pytest.mark.unit
class TestLazyLogger:
    """Test suite for LazyLoggerAdapter."""

    def test_callable_skipped_when_disabled(self):
        adapter = get_lazy_logger("tests.lazy.disabled")
        adapter.logger.setLevel(logging.INFO)
        calls = []

        adapter.debug(lambda: calls.append("evaluated") or "message")

        assert calls == []

    def test_callable_evaluated_when_enabled(self, caplog):
        adapter = get_lazy_logger("tests.lazy.enabled")

        with caplog.at_level(logging.DEBUG, logger="tests.lazy.enabled"):
            adapter.debug(lambda: "moved 3 nodes")

        assert caplog.records[-1].getMessage() == "moved 3 nodes"

    def test_bound_context_merged_into_extra(self, caplog):
        adapter = get_lazy_logger("tests.lazy.context", component="tree")

        with caplog.at_level(logging.INFO, logger="tests.lazy.context"):
            adapter.info("Node created", extra={"code": "X"})

        record = caplog.records[-1]
        assert record.component == "tree"
        assert record.code == "X"

    def test_lazy_string(self):
        assert str(lazy(lambda: ["/A", "/A/B"])) == "['/A', '/A/B']"

    def test_adapter_type(self):
        assert isinstance(get_lazy_logger(__name__), LazyLoggerAdapter)


@pytest.mark.unit
@pytest.mark.usefixtures("restore_root_logger")
class TestConfigureLogging:
    """Test suite for configure_logging and setup_logging."""

    def test_json_console_config(self):
        config = configure_logging(log_level="debug", json_logs=True, sqlalchemy_level="info")

        assert config["root"]["level"] == "DEBUG"
        assert config["root"]["handlers"] == ["console"]
        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["loggers"]["sqlalchemy.engine"]["level"] == "INFO"
        assert logging.getLogger("sqlalchemy.engine").level == logging.INFO

    def test_text_file_config(self, tmp_path):
        log_file = tmp_path / "logs" / "tree.log"

        config = configure_logging(json_logs=False, console_enabled=False, file_path=log_file)

        assert list(config["handlers"]) == ["file"]
        assert config["handlers"]["file"]["formatter"] == "text"
        assert log_file.parent.is_dir()

    def test_setup_logging_applies_settings(self, monkeypatch):
        from materialized_tree.infra.logging import config as config_module

        monkeypatch.setattr(config_module, "_LOGGING_INITIALIZED", False)

        setup_logging(LoggingSettings(level="warning", json_logs=False))

        assert logging.getLogger().level == logging.WARNING

    def test_setup_logging_runs_once(self, monkeypatch):
        from materialized_tree.infra.logging import config as config_module

        monkeypatch.setattr(config_module, "_LOGGING_INITIALIZED", True)
        applied = []
        monkeypatch.setattr(config_module, "configure_logging", lambda **kw: applied.append(kw))

        setup_logging(LoggingSettings())
        setup_logging(LoggingSettings(), force=True, log_level="ERROR")

        assert len(applied) == 1
        assert applied[0]["log_level"] == "ERROR"
