"""
Fast JSON utilities backed by orjson.

Usage:
    from dashsync.core.json_utils import dumps, loads

    log.info(dumps({"event": "app_synced", "url": url}))
"""

from __future__ import annotations

from typing import Any

import orjson


def dumps(obj: Any) -> str:
    """Compact JSON encode to string."""
    return orjson.dumps(obj, default=_default).decode("utf-8")


def dumps_pretty(obj: Any) -> str:
    """Indented JSON with sorted keys, for files humans may read."""
    return orjson.dumps(
        obj, default=_default, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS
    ).decode("utf-8")


def loads(s: str | bytes) -> Any:
    """JSON decode. Raises orjson.JSONDecodeError (a ValueError) on bad input."""
    return orjson.loads(s)


def _default(obj: Any) -> Any:
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")
