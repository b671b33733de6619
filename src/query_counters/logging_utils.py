"""Logging helpers that keep raw query literals out of log output."""

from __future__ import annotations

import json
import logging
import re
from threading import Lock
from typing import Any, Dict

from .config import get_settings
from .normalizer import strip_literals

_CONFIG_LOCK = Lock()
_CONFIGURED = False

_QUERY_FIELDS = ("query", "sql")
_SQL_START_PATTERN = re.compile(
    r"\b(?:SELECT|INSERT|UPDATE|DELETE|MERGE|(?-i:WITH))\b", flags=re.IGNORECASE
)


def scrub_query(value: str) -> str:
    """Strip literals from the SQL statement embedded in ``value``, if any."""

    match = _SQL_START_PATTERN.search(value)
    if match is None:
        return value
    return value[: match.start()] + " ".join(strip_literals(value[match.start():]).split())


def _scrub_arg(value: Any) -> Any:
    return scrub_query(value) if isinstance(value, str) else value


def _scrub_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    scrubbed = dict(payload)
    for field in _QUERY_FIELDS:
        value = scrubbed.get(field)
        if isinstance(value, str):
            scrubbed[field] = " ".join(strip_literals(value).split())
    return scrubbed


class QueryLiteralScrubberFilter(logging.Filter):
    """Replaces SQL literals in log messages, args and ``query``/``payload`` attributes with ``?``."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str) and _SQL_START_PATTERN.search(record.msg):
            # Render first so driver placeholders in the template survive formatting.
            record.msg = scrub_query(record.getMessage())
            record.args = ()
        elif record.args:
            if isinstance(record.args, tuple):
                record.args = tuple(_scrub_arg(arg) for arg in record.args)
            elif isinstance(record.args, dict):
                record.args = {key: _scrub_arg(value) for key, value in record.args.items()}

        query = getattr(record, "query", None)
        if isinstance(query, str):
            record.query = " ".join(strip_literals(query).split())

        payload = getattr(record, "payload", None)
        if isinstance(payload, dict):
            record.payload = _scrub_payload(payload)

        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if hasattr(record, "event"):
            payload["event"] = record.event
        if hasattr(record, "payload"):
            payload["payload"] = record.payload
        if hasattr(record, "query"):
            payload["query"] = record.query
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(level: int | str | None = None) -> None:
    """Configure root logger with literal scrubbing and consistent format."""

    global _CONFIGURED
    with _CONFIG_LOCK:
        if _CONFIGURED:
            return

        settings = get_settings()
        level = level if level is not None else settings.log_level
        if settings.log_format == "json":
            handler = logging.StreamHandler()
            handler.setFormatter(JSONFormatter())
            logging.basicConfig(level=level, handlers=[handler])
        else:
            logging.basicConfig(level=level, format="[%(levelname)s] %(name)s - %(message)s")

        root_logger = logging.getLogger()
        for handler in root_logger.handlers:
            handler.addFilter(QueryLiteralScrubberFilter())
        _CONFIGURED = True


def log_event(event: str, payload: dict | None = None, level: int = logging.INFO) -> None:
    logger = logging.getLogger("query_counters.observability")
    scrubbed = _scrub_payload(payload or {})
    logger.log(level, json.dumps(scrubbed, ensure_ascii=False), extra={"event": event, "payload": scrubbed})


__all__ = ["JSONFormatter", "QueryLiteralScrubberFilter", "configure_logging", "log_event", "scrub_query"]
