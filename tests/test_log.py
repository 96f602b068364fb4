"""Tests for logging configuration."""

from __future__ import annotations

import io
import json
import logging

import pytest
import structlog

from autoexport import configure_logging, get_logger


@pytest.fixture
def reset_logging():
    yield
    structlog.reset_defaults()
    package_logger = logging.getLogger("autoexport")
    package_logger.handlers.clear()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True
    for name in ("aiosqlite", "sqlalchemy.engine"):
        logging.getLogger(name).setLevel(logging.NOTSET)


def test_json_lines(reset_logging):
    stream = io.StringIO()
    configure_logging("DEBUG", json_logs=True, stream=stream)

    get_logger("autoexport.queue").info("Auto-export finished", path="/out/lib.bib", status="done")

    record = json.loads(stream.getvalue().splitlines()[-1])
    assert record["event"] == "Auto-export finished"
    assert record["path"] == "/out/lib.bib"
    assert record["status"] == "done"
    assert record["level"] == "info"
    assert record["logger"] == "autoexport.queue"


def test_non_tty_defaults_to_json(reset_logging):
    stream = io.StringIO()
    configure_logging(stream=stream)

    get_logger("git").warning("Could not push", root="/repo")

    record = json.loads(stream.getvalue())
    assert record["logger"] == "autoexport.git"


def test_level_filters_events(reset_logging):
    stream = io.StringIO()
    configure_logging("WARNING", stream=stream)

    get_logger("autoexport.queue").info("Auto-export started")

    assert stream.getvalue() == ""


def test_only_package_loggers_are_configured(reset_logging):
    root_handlers = list(logging.getLogger().handlers)

    configure_logging(logging.DEBUG, stream=io.StringIO())

    assert logging.getLogger().handlers == root_handlers
    assert not logging.getLogger("autoexport").propagate
    assert logging.getLogger("aiosqlite").level == logging.WARNING
