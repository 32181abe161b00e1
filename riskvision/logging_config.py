"""Structured logging configuration for RiskVision."""

from __future__ import annotations

import json
import logging
import sys

from riskvision.utils.time import utc_now

_CONTEXT_KEYS = ("request_id", "method", "path", "status_code", "duration_ms", "project_id", "provider")


class JSONFormatter(logging.Formatter):
    """Collects each record into a structured entry.

    ``as_json=True`` emits one JSON object per line for log shippers; otherwise
    the entry is printed as ``key=value`` pairs for local development.
    """

    def __init__(self, as_json: bool = False) -> None:
        super().__init__()
        self.as_json = as_json

    def _entry(self, record: logging.LogRecord) -> dict:
        entry = {
            "timestamp": utc_now().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Request / domain context passed through ``extra=``.
        for key in _CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return entry

    def format(self, record: logging.LogRecord) -> str:
        entry = self._entry(record)
        if self.as_json:
            return json.dumps(entry, default=str)

        parts = [f"[{entry['level']:<7}]", entry["timestamp"], f"{entry['logger']}:", entry["message"]]
        parts.extend(f"{key}={entry[key]}" for key in _CONTEXT_KEYS if key in entry)
        if "exception" in entry:
            parts.append(f"\n{entry['exception']}")
        return " ".join(parts)


def setup_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Install the RiskVision handler on the root logger once per process."""
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(as_json=fmt.lower() == "json"))
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for noisy, noisy_level in (
        ("uvicorn.access", logging.WARNING),
        ("sqlalchemy.engine", logging.WARNING),
        ("httpx", logging.WARNING),
        ("passlib", logging.ERROR),
    ):
        logging.getLogger(noisy).setLevel(noisy_level)
