from __future__ import annotations

import json
import logging

from pgflex.utils.logging import _json_formatter, configure_logging, get_logger

EXPECTED_ROWS = 10
EXPECTED_BATCH_SIZE = 1000


def _record() -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="could not coerce %s",
        args=("severity",),
        exc_info=None,
    )


def test_json_formatter_promotes_standard_extra_fields() -> None:
    record = _record()
    record.rows = EXPECTED_ROWS
    record.column = "severity"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "WARNING"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "could not coerce severity"
    assert payload["rows"] == EXPECTED_ROWS
    assert payload["column"] == "severity"
    assert "pathname" not in payload


def test_json_formatter_supports_legacy_nested_extra_field() -> None:
    record = _record()
    record.extra = {"batch_size": EXPECTED_BATCH_SIZE}

    payload = json.loads(_json_formatter(record))

    assert payload["batch_size"] == EXPECTED_BATCH_SIZE


def test_json_formatter_stringifies_unserializable_extras() -> None:
    record = _record()
    record.table = object()

    payload = json.loads(_json_formatter(record))

    assert payload["table"].startswith("<object object")


def test_configure_logging_sets_root_level() -> None:
    root = logging.getLogger()
    previous_level, previous_handlers = root.level, list(root.handlers)
    try:
        configure_logging(level="debug", json_logs=True)
        assert root.level == logging.DEBUG
        assert get_logger("pgflex.test").getEffectiveLevel() == logging.DEBUG
    finally:
        root.handlers = previous_handlers
        root.setLevel(previous_level)
