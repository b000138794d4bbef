"""
State persistence helpers.

StateStore does blocking file IO; AtomicStateStore wraps it for the event loop.
Writes go to a temp file that replaces the real one, so a crash mid-write
leaves the previous document intact.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from dashsync.core.errors import StateCorrupt
from dashsync.core.json_utils import dumps_pretty, loads
from dashsync.infra.logging_cfg import log_event
from dashsync.state.reconciler_state import ReconcilerState

log = logging.getLogger("dashsync")


class StateStore:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.tmp = self.path.with_name(self.path.name + ".tmp")

    def read(self) -> ReconcilerState:
        """Parse the state file. Missing file -> fresh state; bad content -> StateCorrupt."""
        if not self.path.exists():
            return ReconcilerState()
        try:
            return ReconcilerState.from_dict(loads(self.path.read_bytes()))
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            raise StateCorrupt(f"cannot parse {self.path}: {exc}") from exc

    def load(self) -> ReconcilerState:
        """
        Like read(), but a corrupt file degrades to a fresh default state.

        The unreadable file is kept next to the original as `<name>.corrupt`
        for the operator; first-boot setup will run again.
        """
        try:
            return self.read()
        except StateCorrupt as exc:
            backup = self.path.with_name(self.path.name + ".corrupt")
            try:
                self.path.replace(backup)
            except OSError as move_exc:
                log_event(log, "state_backup_failed", level=logging.ERROR, error=str(move_exc))
            log_event(
                log, "state_corrupt_reset", level=logging.WARNING,
                path=str(self.path), backup=str(backup), error=str(exc),
            )
            return ReconcilerState()

    def save(self, state: ReconcilerState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.tmp.write_text(dumps_pretty(state.to_dict()), encoding="utf-8")
        self.tmp.replace(self.path)

    def reset(self) -> bool:
        """Drop the state file. Returns True if there was one."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True


class AtomicStateStore:
    """
    Async wrapper around StateStore.

    Runs file IO in the default executor and serializes access with an
    asyncio.Lock so a save never interleaves with a load.
    """

    def __init__(self, path: str | Path) -> None:
        self._store = StateStore(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._store.path

    async def load(self) -> ReconcilerState:
        async with self._lock:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self._store.load)

    async def save(self, state: ReconcilerState) -> None:
        # Serialize on the loop thread so the executor never sees a state being mutated
        async with self._lock:
            loop = asyncio.get_running_loop()
            snapshot = ReconcilerState.from_dict(state.to_dict())
            await loop.run_in_executor(None, self._store.save, snapshot)

    async def reset(self) -> bool:
        async with self._lock:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self._store.reset)
