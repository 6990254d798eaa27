from __future__ import annotations

import json
import logging

from erpstore.diagnostics import CollectingSink, LoggingSink
from erpstore.errors import ErrorCategory
from erpstore.utils.logging import ConsoleFormatter, _json_formatter

EXPECTED_ROWS = 10
EXPECTED_POOL_SIZE = 4


def _record() -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="hello %s",
        args=("world",),
        exc_info=None,
    )


def test_json_formatter_promotes_standard_extra_fields() -> None:
    record = _record()
    record.rows = EXPECTED_ROWS
    record.table = "payments"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello world"
    assert payload["rows"] == EXPECTED_ROWS
    assert payload["table"] == "payments"
    assert "lineno" not in payload


def test_json_formatter_supports_legacy_nested_extra_field() -> None:
    record = _record()
    record.extra = {"pool_size": EXPECTED_POOL_SIZE}

    payload = json.loads(_json_formatter(record))

    assert payload["pool_size"] == EXPECTED_POOL_SIZE


def test_logging_sink_attaches_category_and_source(caplog) -> None:
    sink = LoggingSink(logging.getLogger("test.diagnostics"))

    with caplog.at_level(logging.ERROR, logger="test.diagnostics"):
        sink.report(ErrorCategory.POOL_EXHAUSTED, "no connection", source="ConnectionPool")

    [record] = caplog.records
    assert record.category == "pool_exhausted"
    assert record.source == "ConnectionPool"
    assert record.getMessage() == "ConnectionPool: no connection"
    assert json.loads(_json_formatter(record))["category"] == "pool_exhausted"


def test_collecting_sink_keeps_and_forwards_reports() -> None:
    downstream = CollectingSink()
    sink = CollectingSink(forward_to=downstream)
    error = RuntimeError("boom")

    sink.report(ErrorCategory.STATEMENT_FAILED, "first", source="a")
    sink.report(ErrorCategory.DECODE_FAILED, "second", source="b", exc=error)

    assert len(sink) == 2
    assert sink.categories() == [ErrorCategory.STATEMENT_FAILED, ErrorCategory.DECODE_FAILED]
    assert sink.last().exc is error
    assert [entry.message for entry in downstream.entries] == ["first", "second"]

    sink.clear()
    assert len(sink) == 0
    assert sink.last() is None
    assert len(downstream) == 2


def test_console_formatter_appends_diagnostic_category() -> None:
    plain = _record()
    reported = _record()
    reported.category = "statement_failed"

    formatter = ConsoleFormatter()

    assert formatter.format(plain).endswith("| INFO | test.logger | hello world")
    assert formatter.format(reported).endswith("| hello world | statement_failed")
