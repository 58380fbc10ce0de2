"""Tests for structured logging setup."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator

import pytest

from redis_operator.config import Config
from redis_operator.logging_setup import JsonFormatter, setup_logging


def make_record(msg: str = "creating a new %s", *args: object, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="redis_operator.ensurer",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root_logger() -> Iterator[logging.Logger]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_fields(self) -> None:
        data = json.loads(JsonFormatter().format(make_record("creating a new %s", "Service")))

        assert data["message"] == "creating a new Service"
        assert data["level"] == "INFO"
        assert data["logger"] == "redis_operator.ensurer"
        assert data["timestamp"].endswith("Z")

    def test_extra_fields_are_top_level(self) -> None:
        record = make_record(**{"Service.Namespace": "db", "Service.Name": "x-svc"})

        data = json.loads(JsonFormatter().format(record))

        assert data["Service.Namespace"] == "db"
        assert data["Service.Name"] == "x-svc"
        assert "args" not in data
        assert "pathname" not in data

    def test_unserializable_values_use_str(self) -> None:
        data = json.loads(JsonFormatter().format(make_record(error=ValueError("bad"))))

        assert data["error"] == "bad"

    def test_exception(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: boom" in data["exception"]


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_handler(self, restore_root_logger: logging.Logger) -> None:
        handler = setup_logging(Config(log_level="DEBUG"))

        assert handler in restore_root_logger.handlers
        assert isinstance(handler.formatter, JsonFormatter)
        assert restore_root_logger.level == logging.DEBUG

    def test_plain_handler(self, restore_root_logger: logging.Logger) -> None:
        handler = setup_logging(Config(json_logs=False, log_level="WARNING"))

        assert not isinstance(handler.formatter, JsonFormatter)
        assert restore_root_logger.level == logging.WARNING

    def test_quiets_client_libraries(self, restore_root_logger: logging.Logger) -> None:
        setup_logging(Config(log_level="DEBUG"))

        assert logging.getLogger("kubernetes").level == logging.WARNING
        assert logging.getLogger("urllib3").level == logging.WARNING
