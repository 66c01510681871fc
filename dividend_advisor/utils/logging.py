"""
Logging setup for the dividend advisor.

``configure_logging(config)`` runs once at CLI entry; library modules only
call ``logging.getLogger(__name__)``.

With ``json_format = true`` under ``[logging]`` each record becomes one JSON
line, and ``extra=`` fields (``correlation_id`` above all) sit at the top
level so a single pipeline run can be grepped out of the file::

    {"ts": "2026-03-02T15:00:00Z", "level": "INFO", "logger": "...",
     "msg": "...", "correlation_id": "req-123"}

Every handler carries ``_SecretFilter``: Alpha Vantage takes its key as an
``apikey=`` query parameter, and anything that echoes a request URL would
otherwise write the key to disk.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from dividend_advisor.config import LoggingConfig

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# SDK loggers that echo request URLs at INFO/DEBUG
_CHATTY_LOGGERS = ("httpx", "httpcore", "openai")

_STANDARD_FIELDS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}
_API_KEY_RE = re.compile(r"(apikey=)[^&\s'\"]+", re.IGNORECASE)


class _SecretFilter(logging.Filter):
    """Masks ``apikey=...`` in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = _API_KEY_RE.sub(r"\1***", message)
        if masked != message:
            record.msg, record.args = masked, None
        return True


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict = {
            "ts": created.strftime(TIMESTAMP_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _STANDARD_FIELDS and not key.startswith("_")
        )
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def truncate_for_log(text: str, limit: int = 500) -> str:
    """Cap untrusted text (model output, provider payloads) before logging it."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}...[truncated {len(text) - limit} chars]"


def _handler(
    level: int, formatter: logging.Formatter, log_file: Optional[str] = None
) -> logging.Handler:
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(_SecretFilter())
    return handler


def configure_logging(config: "LoggingConfig") -> None:
    """Point the root logger at stdout (and ``config.log_file`` when set)."""
    level = logging.getLevelName(config.level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    formatter = (
        _JsonFormatter()
        if config.json_format
        else logging.Formatter(TEXT_FORMAT, datefmt=TIMESTAMP_FORMAT)
    )
    handlers = [_handler(level, formatter)]
    if config.log_file:
        handlers.append(_handler(level, formatter, config.log_file))

    logging.basicConfig(level=level, handlers=handlers, force=True)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
