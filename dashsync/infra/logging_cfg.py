"""
Structured logging setup for the adapter.

- Rich console handler for humans
- Optional JSON-lines file for downstream ingestion
- Throttling for transport warnings that repeat every retry
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Dict, Optional, Set

from rich.logging import RichHandler

from dashsync.core.json_utils import dumps, loads


class JsonFormatter(logging.Formatter):
    """Compact JSON formatter for structured log ingestion."""

    def format(self, record: logging.LogRecord) -> str:
        ts = record.created
        payload = {
            "ts": ts,
            "ts_iso": datetime.fromtimestamp(ts).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return dumps(payload)


class ThrottledFilter(logging.Filter):
    """
    Suppress repeats of selected structured events for cooldown_sec.

    Keyed on the event name plus its "url" or "procedure" field, so the same
    failure for two different apps is still reported.
    """

    def __init__(self, cooldown_sec: float = 30.0, throttled_events: Optional[Set[str]] = None):
        super().__init__()
        self._cooldown = cooldown_sec
        self._last_seen: Dict[str, float] = {}
        self._throttled_events = throttled_events or {
            "remote_unavailable", "cycle_retry_scheduled", "event_stream_error",
        }

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        try:
            data = loads(msg)
        except ValueError:
            return True
        if not isinstance(data, dict):
            return True

        event = data.get("event", "")
        if event not in self._throttled_events:
            return True

        now = time.time()
        key = f"{event}:{data.get('url', data.get('procedure', ''))}"
        last = self._last_seen.get(key, 0.0)
        if now - last < self._cooldown:
            return False
        self._last_seen[key] = now
        return True


def build_logger(
    name: str = "dashsync",
    level: int = logging.INFO,
    file_path: Optional[str] = None,
    throttle_warnings: bool = True,
) -> logging.Logger:
    """
    Build the process logger.

    Args:
        name: Logger name
        level: Minimum log level
        file_path: Path to JSON-lines log file (None disables file logging)
        throttle_warnings: Apply throttling filter to the console handler

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Idempotent handler setup
    if logger.handlers:
        for h in logger.handlers:
            h.setLevel(level)
        if file_path and not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
            _add_file_handler(logger, file_path, level)
        return logger

    stream_handler = RichHandler(
        rich_tracebacks=False,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
    )
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter("%(message)s"))
    if throttle_warnings:
        stream_handler.addFilter(ThrottledFilter(cooldown_sec=30.0))
    logger.addHandler(stream_handler)

    if file_path:
        _add_file_handler(logger, file_path, level)

    logger.propagate = False
    return logger


def _add_file_handler(logger: logging.Logger, file_path: str, level: int) -> None:
    file_handler = logging.FileHandler(file_path)
    file_handler.setFormatter(JsonFormatter())
    file_handler.setLevel(level)
    logger.addHandler(file_handler)


def log_event(
    logger: logging.Logger,
    event: str,
    level: int = logging.INFO,
    **data,
) -> None:
    """
    Log a structured event with proper level.

    Usage:
        log_event(log, "app_created", url=url, app_id=app_id)
    """
    payload = {"event": event, **data}
    logger.log(level, dumps(payload))
