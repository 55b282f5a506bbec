from __future__ import annotations

import json
import logging

from repqueue.utils.logging import _json_formatter, configure_logging

EXPECTED_PROCESSED = 10
EXPECTED_MAX_BATCH = 10


def _record() -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="hello",
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_standard_extra_fields() -> None:
    record = _record()
    record.processed = EXPECTED_PROCESSED
    record.item_type = "ReplicationTxn"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello"
    assert payload["processed"] == EXPECTED_PROCESSED
    assert payload["item_type"] == "ReplicationTxn"
    assert "lineno" not in payload


def test_json_formatter_supports_legacy_nested_extra_field() -> None:
    record = _record()
    record.extra = {"max_batch": EXPECTED_MAX_BATCH}

    payload = json.loads(_json_formatter(record))

    assert payload["max_batch"] == EXPECTED_MAX_BATCH


def test_json_formatter_stringifies_unserializable_values() -> None:
    record = _record()
    record.params = {"path": object()}

    payload = json.loads(_json_formatter(record))

    assert isinstance(payload["params"]["path"], str)


def test_configure_logging_sets_root_level() -> None:
    configure_logging(level="debug")

    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING

    configure_logging(level="INFO")
