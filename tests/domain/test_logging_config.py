"""Test structlog configuration: JSON rendering and context variable merging."""

import json
import logging

import pytest
import structlog

from coursegen.core.logging import configure_structlog

pytestmark = pytest.mark.unit


@pytest.fixture
def restore_logging():
    """Reset structlog and root handlers after each test."""
    root = logging.getLogger()
    package = logging.getLogger("coursegen")
    handlers, level, package_level = root.handlers[:], root.level, package.level
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    root.handlers[:] = handlers
    root.setLevel(level)
    package.setLevel(package_level)


def test_json_logs_include_bound_context(restore_logging, capsys):
    """JSON output carries the event, level, logger name and bound contextvars."""
    configure_structlog(log_level="INFO", json_logs=True)
    structlog.contextvars.bind_contextvars(task_id="module_u1_1_abc")

    structlog.get_logger("coursegen.test").info("generation_attempt_started", attempt=1)

    line = capsys.readouterr().out.strip().splitlines()[-1]
    entry = json.loads(line)
    assert entry["event"] == "generation_attempt_started"
    assert entry["level"] == "info"
    assert entry["logger"] == "coursegen.test"
    assert entry["task_id"] == "module_u1_1_abc"
    assert entry["attempt"] == 1
    assert "timestamp" in entry


def test_log_level_filters_debug(restore_logging, capsys):
    """Records below the configured level are dropped."""
    configure_structlog(log_level="WARNING", json_logs=True)

    structlog.get_logger("coursegen.test").info("admission_request_admitted")

    assert capsys.readouterr().out == ""


def test_entries_from_package_carry_component(restore_logging, capsys):
    """Loggers under coursegen are tagged with the emitting module name."""
    configure_structlog(log_level="INFO", json_logs=True)

    structlog.get_logger("coursegen.queue.admission").info("admission_request_queued", position=2)

    entry = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert entry["component"] == "admission"
    assert entry["position"] == 2


def test_library_loggers_use_their_own_level(restore_logging, capsys):
    """Other libraries stay at library_log_level while coursegen logs at log_level."""
    configure_structlog(log_level="DEBUG", json_logs=True, library_log_level="WARNING")

    logging.getLogger("some_library").info("connection pool warmed")
    logging.getLogger("some_library").warning("connection pool exhausted")
    structlog.get_logger("coursegen.generation_queue").debug("generation_dispatch_idle")

    entries = [json.loads(line) for line in capsys.readouterr().out.strip().splitlines()]
    assert [entry["event"] for entry in entries] == ["connection pool exhausted", "generation_dispatch_idle"]
    assert "component" not in entries[0]
    assert entries[1]["component"] == "generation_queue"
