"""
Infrastructure package.

Logging configuration and structured event helpers.
"""

from dashsync.infra.logging_cfg import JsonFormatter, ThrottledFilter, build_logger, log_event

__all__ = [
    "JsonFormatter",
    "ThrottledFilter",
    "build_logger",
    "log_event",
]
