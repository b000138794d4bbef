"""
Credential acquisition for the board client.

session mode: log in with the branding admin credentials (cookie session).
api_key mode: use the cached permanent key, or exchange the single-use
bootstrap key for one. The permanent key is written to the state file before
it is used, because it cannot be fetched again and the bootstrap key is gone
once exchanged.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Protocol

from dashsync.core.errors import AuthRejected
from dashsync.infra.logging_cfg import log_event
from dashsync.state.reconciler_state import ReconcilerState

log = logging.getLogger("dashsync")


class CredentialClient(Protocol):
    def use_api_key(self, api_key: str) -> None: ...
    async def rotate_api_key(self, bootstrap_key: str) -> str: ...
    async def login(self, username: str, password: str) -> None: ...


class StateSaver(Protocol):
    async def save(self, state: ReconcilerState) -> None: ...


def read_bootstrap_key(path: str | Path) -> Optional[str]:
    p = Path(path)
    try:
        key = p.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    return key or None


class CredentialManager:
    def __init__(
        self,
        client: CredentialClient,
        store: StateSaver,
        auth_mode: str,
        username: str,
        password: str,
        bootstrap_key_file: str | Path,
    ) -> None:
        self.client = client
        self.store = store
        self.auth_mode = auth_mode
        self.username = username
        self.password = password
        self.bootstrap_key_file = Path(bootstrap_key_file)

    async def acquire(self, state: ReconcilerState) -> str:
        """
        Authenticate the client. Returns how: "session", "cached" or "rotated".

        Raises AuthRejected when no usable credential exists.
        """
        if self.auth_mode == "session":
            await self.client.login(self.username, self.password)
            return "session"

        if state.api_key:
            self.client.use_api_key(state.api_key)
            return "cached"

        bootstrap = read_bootstrap_key(self.bootstrap_key_file)
        if bootstrap is None:
            raise AuthRejected(
                f"no cached API key and no bootstrap key at {self.bootstrap_key_file}",
                procedure="apiKeys.create",
            )

        permanent = await self.client.rotate_api_key(bootstrap)
        state.api_key = permanent
        await self.store.save(state)
        log_event(log, "api_key_rotated", path=str(self.bootstrap_key_file))
        self._consume_bootstrap()

        self.client.use_api_key(permanent)
        return "rotated"

    def _consume_bootstrap(self) -> None:
        try:
            self.bootstrap_key_file.unlink()
        except OSError as exc:
            # Harmless: a cached key always wins over the file on later runs
            log_event(log, "bootstrap_key_not_removed", level=logging.WARNING, error=str(exc))
