from __future__ import annotations

import io
import json
import logging
import sys

import pytest

from potion.logging_setup import ContextLogFormatter, JsonLogFormatter, configure_logging


@pytest.fixture()
def restore_root_logging():
    """Put the root and uvicorn loggers back the way pytest left them."""
    names = ("", "uvicorn", "uvicorn.error", "uvicorn.access")
    saved = {
        name: (logging.getLogger(name).handlers[:], logging.getLogger(name).level, logging.getLogger(name).propagate)
        for name in names
    }
    yield
    for name, (handlers, level, propagate) in saved.items():
        target = logging.getLogger(name)
        target.handlers[:] = handlers
        target.setLevel(level)
        target.propagate = propagate


def _record(msg: str = "Imported %s", *args, exc_info=None, **extra) -> logging.LogRecord:
    record = logging.LogRecord("potion.transfer", logging.INFO, __file__, 10, msg, args or ("w1",), exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_storage_context():
    payload = json.loads(JsonLogFormatter().format(_record(workspace_id="w1", backup_key="potion-backup-v1-5")))

    assert payload["message"] == "Imported w1"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "potion.transfer"
    assert payload["workspace_id"] == "w1"
    assert payload["backup_key"] == "potion-backup-v1-5"
    assert "page_id" not in payload


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("disk full")
    except RuntimeError:
        record = _record(exc_info=sys.exc_info())

    payload = json.loads(JsonLogFormatter().format(record))

    assert "RuntimeError: disk full" in payload["exception"]


def test_plain_formatter_appends_context_to_first_line():
    line = ContextLogFormatter().format(_record(page_id="p1", migration_version=2))

    assert line.endswith("Imported w1 page_id=p1 migration_version=2")
    assert ContextLogFormatter().format(_record()).endswith("Imported w1")


def test_configure_logging_respects_marker(restore_root_logging):
    # The autouse fixture has already set the marker.
    assert configure_logging() is None


def test_configure_logging_installs_one_handler(restore_root_logging):
    stream = io.StringIO()

    handler = configure_logging("debug", json_output=True, stream=stream, force=True)
    logging.getLogger("potion.adapter").debug("Cleared %s", "stores", extra={"workspace_id": "w1"})

    assert logging.getLogger().handlers == [handler]
    assert logging.getLogger("uvicorn.access").handlers == []
    payload = json.loads(stream.getvalue().splitlines()[-1])
    assert payload["message"] == "Cleared stores"
    assert payload["workspace_id"] == "w1"
