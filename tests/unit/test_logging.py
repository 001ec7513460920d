from __future__ import annotations

import json
import logging
import sys

from cryptowill.utils.logging import (
    REDACTED,
    ConsoleFormatter,
    JsonFormatter,
    _json_formatter,
    configure_logging,
)

EXPECTED_REVEALED = 5000


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_extra_fields() -> None:
    record = _record("[EXECUTE SUCCESS] w1")
    record.record_id = "w1"
    record.operation = "execute"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "[EXECUTE SUCCESS] w1"
    assert payload["record_id"] == "w1"
    assert payload["operation"] == "execute"
    assert "pathname" not in payload


def test_json_formatter_supports_nested_extra_field() -> None:
    record = _record()
    record.extra = {"revealed_amount": EXPECTED_REVEALED}

    payload = json.loads(_json_formatter(record))

    assert payload["revealed_amount"] == EXPECTED_REVEALED
    assert "extra" not in payload


def test_json_formatter_includes_exception_text() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord(
            name="test.logger",
            level=logging.ERROR,
            pathname=__file__,
            lineno=1,
            msg="failed",
            args=(),
            exc_info=sys.exc_info(),
        )

    payload = json.loads(JsonFormatter().format(record))

    assert "RuntimeError: boom" in payload["exc_info"]


def test_configure_logging_installs_json_handler() -> None:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    try:
        configure_logging(level="DEBUG", json_logs=True)

        assert root.level == logging.DEBUG
        assert any(isinstance(h.formatter, JsonFormatter) for h in root.handlers)
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)


def test_configure_logging_without_force_keeps_existing_handlers() -> None:
    root = logging.getLogger()
    sentinel = logging.NullHandler()
    root.addHandler(sentinel)
    try:
        configure_logging(level="INFO", json_logs=True, force=False)

        assert sentinel in root.handlers
    finally:
        root.removeHandler(sentinel)


def test_sensitive_fields_are_redacted() -> None:
    record = _record("[CREATE START] w1")
    record.record_id = "w1"
    record.amount = EXPECTED_REVEALED
    record.extra = {"ciphertext": b"\x01\x02"}

    payload = json.loads(_json_formatter(record))

    assert payload["record_id"] == "w1"
    assert payload["amount"] == REDACTED
    assert payload["ciphertext"] == REDACTED


def test_console_formatter_appends_extra_fields() -> None:
    record = _record("[EXECUTE RACE] w1")
    record.record_id = "w1"
    record.error = None

    line = ConsoleFormatter("%(levelname)s | %(message)s").format(record)

    assert line == "INFO | [EXECUTE RACE] w1 | record_id=w1"
    assert ConsoleFormatter("%(message)s").format(_record("plain")) == "plain"
