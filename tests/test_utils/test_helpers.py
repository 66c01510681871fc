"""
Tests for logging and date helpers.

What we test
------------
1. truncate_for_log caps long text and leaves short text alone.
2. configure_logging installs handlers and the JSON formatter carries extras.
   API keys in query strings are masked before any handler writes them.
3. parse_provider_date handles sentinels, timestamps, and garbage.
"""

from __future__ import annotations

import json
import logging
from datetime import date

import pytest

from dividend_advisor.config import LoggingConfig
from dividend_advisor.utils.logging import (
    _JsonFormatter,
    _SecretFilter,
    configure_logging,
    truncate_for_log,
)
from dividend_advisor.utils.time_utils import parse_provider_date, utcnow


class TestTruncateForLog:
    def test_short_text_unchanged(self):
        assert truncate_for_log("abc", 5) == "abc"

    def test_long_text_marked(self):
        assert truncate_for_log("x" * 12, 5) == "xxxxx...[truncated 7 chars]"


class TestConfigureLogging:
    def test_file_handler_created(self, tmp_path):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        log_file = tmp_path / "logs" / "advisor.log"
        configure_logging(LoggingConfig(level="debug", log_file=str(log_file)))
        try:
            assert root.level == logging.DEBUG
            assert log_file.parent.exists()
            assert any(isinstance(h, logging.FileHandler) for h in root.handlers)
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

    def test_json_formatter_includes_extras(self):
        record = logging.makeLogRecord(
            {"name": "dividend_advisor.test", "levelname": "INFO", "msg": "ran %s",
             "args": ("once",), "correlation_id": "req-1"}
        )
        payload = json.loads(_JsonFormatter().format(record))
        assert payload["msg"] == "ran once"
        assert payload["correlation_id"] == "req-1"
        assert payload["logger"] == "dividend_advisor.test"

    def test_api_key_masked(self):
        record = logging.makeLogRecord(
            {"msg": "GET %s failed", "args": ("https://x/query?symbol=KO&apikey=SECRET123&f=1",)}
        )
        assert _SecretFilter().filter(record) is True
        assert record.getMessage() == "GET https://x/query?symbol=KO&apikey=***&f=1 failed"

    def test_message_without_key_untouched(self):
        record = logging.makeLogRecord({"msg": "ran %s", "args": ("once",)})
        _SecretFilter().filter(record)
        assert record.args == ("once",)


class TestParseProviderDate:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2024-03-31", date(2024, 3, 31)),
            (" 2024-03-31 ", date(2024, 3, 31)),
            ("2024-03-31 16:00:00", date(2024, 3, 31)),
            ("None", None),
            ("-", None),
            ("0000-00-00", None),
            ("", None),
            (None, None),
            ("March 31", None),
        ],
    )
    def test_values(self, value, expected):
        assert parse_provider_date(value) == expected


def test_utcnow_is_aware():
    assert utcnow().tzinfo is not None
