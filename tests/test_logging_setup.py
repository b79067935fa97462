from __future__ import annotations

import json
import logging

import pytest

from bluewand import logging_setup


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("bluewand.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_static_fields(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BLUEWAND_COMMIT", "0123456789abcdef")
    monkeypatch.setenv("BLUEWAND_BRANCH", "main")
    record = _record("hello")

    assert logging_setup.StaticFieldsFilter("WandKit").filter(record)
    assert record.app == "WandKit"
    assert record.commit == "89abcdef"
    assert record.branch == "main"
    assert record.version


def test_json_formatter_includes_extra_fields() -> None:
    record = _record("subscribed", uuid="64a7000d-f691-4b93-a6f4-0968f5b648f8")
    logging_setup.StaticFieldsFilter("WandKit").filter(record)

    payload = json.loads(logging_setup.JSONFormatter().format(record))
    assert payload["msg"] == "subscribed"
    assert payload["level"] == "info"
    assert payload["app"] == "WandKit"
    assert payload["uuid"] == "64a7000d-f691-4b93-a6f4-0968f5b648f8"


def test_fields_formatter_appends_key_values() -> None:
    record = _record("connected", address="E3:AE:CD:AA:BB:CC")
    line = logging_setup.FieldsFormatter(logging_setup.LOG_FORMAT).format(record)
    assert line.endswith("| address=E3:AE:CD:AA:BB:CC")


@pytest.mark.parametrize(
    "log_level, expected",
    [(0, logging.INFO), (1, logging.DEBUG), (2, logging.WARNING), (9, logging.INFO)],
)
def test_setup_logging_levels(restore_root_logger, log_level: int, expected: int) -> None:
    logging_setup.setup_logging(log_level, json_format=False)
    assert restore_root_logger.level == expected
    assert len(restore_root_logger.handlers) == 1
    assert isinstance(restore_root_logger.handlers[0].formatter, logging_setup.FieldsFormatter)


def test_setup_logging_json(restore_root_logger) -> None:
    logging_setup.setup_logging(app="WandKit")
    handler = restore_root_logger.handlers[0]
    assert isinstance(handler.formatter, logging_setup.JSONFormatter)
