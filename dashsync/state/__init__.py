"""
State management package.

Persistent reconciler state and its file store.
"""

from dashsync.state.reconciler_state import (
    ALL_BOARDS,
    STATE_VERSION,
    DiscoveredApp,
    ReconcilerState,
)
from dashsync.state.state import AtomicStateStore, StateStore

__all__ = [
    "ALL_BOARDS",
    "STATE_VERSION",
    "AtomicStateStore",
    "DiscoveredApp",
    "ReconcilerState",
    "StateStore",
]
