"""
Core package.

Error taxonomy and JSON helpers shared by every other package.
"""

from dashsync.core.errors import (
    AdapterError,
    AuthRejected,
    ConfigError,
    NotFound,
    OnboardingStuck,
    RemoteError,
    RemoteProtocol,
    RemoteRejected,
    RemoteUnavailable,
    StateCorrupt,
)
from dashsync.core.json_utils import dumps, dumps_pretty, loads

__all__ = [
    "AdapterError",
    "AuthRejected",
    "ConfigError",
    "NotFound",
    "OnboardingStuck",
    "RemoteError",
    "RemoteProtocol",
    "RemoteRejected",
    "RemoteUnavailable",
    "StateCorrupt",
    "dumps",
    "dumps_pretty",
    "loads",
]
