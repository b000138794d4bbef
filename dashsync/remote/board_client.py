"""
Async client for the dashboard's tRPC control API.

Wire format:
    query:    GET  /api/trpc/<procedure>?input={"json": {...}}
    mutation: POST /api/trpc/<procedure>   body {"json": {...}}
    success:  {"result": {"data": {"json": <payload>}}}
    error:    {"error": {"json": {"message": ..., "data": {"code": ..., "httpStatus": ...}}}}

Error mapping:
    transport error / timeout / 5xx -> RemoteUnavailable
    401 / 403                       -> AuthRejected
    404 or code NOT_FOUND           -> NotFound
    other 4xx                       -> RemoteRejected
    undecodable 2xx body            -> RemoteProtocol

No call is retried here; the daemon loop owns retries.

The credential is explicit per instance: an API key passed to the constructor
(or `use_api_key`), or a session cookie obtained by `login()` into this
instance's cookie jar.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from dashsync.core.errors import (
    AuthRejected,
    NotFound,
    RemoteProtocol,
    RemoteRejected,
    RemoteUnavailable,
)
from dashsync.core.json_utils import dumps
from dashsync.infra.logging_cfg import log_event
from dashsync.remote.models import AppSpec, Board, BoardItem, BoardSummary, RemoteApp

log = logging.getLogger("dashsync")

TRPC_PREFIX = "/api/trpc"


class BoardClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        # A shared client is not closed by close(); one we create is ours.
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
            self._owns_client = True
        if api_key:
            self.use_api_key(api_key)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "BoardClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def use_api_key(self, api_key: str) -> None:
        self.client.headers["Authorization"] = f"Bearer {api_key}"

    # ========== Onboarding ==========

    async def get_onboarding_step(self) -> str:
        data = await self._query("onboard.currentStep")
        if not isinstance(data, dict) or "current" not in data:
            raise RemoteProtocol("onboarding step response has no 'current'", procedure="onboard.currentStep")
        return str(data["current"])

    async def advance_onboarding(self) -> None:
        await self._mutate("onboard.nextStep", {})

    async def create_initial_user(self, username: str, password: str) -> None:
        """Create the first admin. Any error status is final, including 5xx."""
        await self._mutate(
            "user.initUser",
            {"username": username, "password": password, "confirmPassword": password},
            retryable=False,
        )

    async def apply_settings(self, settings: Dict[str, Any]) -> None:
        await self._mutate("serverSettings.initSettings", settings)

    # ========== Credentials ==========

    async def rotate_api_key(self, bootstrap_key: str) -> str:
        """
        Exchange a single-use bootstrap key for a permanent one.

        The returned key cannot be fetched again; the caller must persist it
        before doing anything else with it.
        """
        data = await self._mutate(
            "apiKeys.create",
            {},
            headers={"Authorization": f"Bearer {bootstrap_key}"},
        )
        key = data.get("apiKey") if isinstance(data, dict) else None
        if not key:
            raise RemoteProtocol("apiKeys.create returned no key", procedure="apiKeys.create")
        return str(key)

    async def login(self, username: str, password: str) -> None:
        """Cookie session login (csrf token + credentials callback)."""
        resp = await self._send("GET", "/api/auth/csrf", procedure="auth.csrf")
        token = _json_body(resp, "auth.csrf").get("csrfToken")
        if not token:
            raise RemoteProtocol("csrf response has no token", procedure="auth.csrf")

        resp = await self._send(
            "POST",
            "/api/auth/callback/credentials",
            procedure="auth.login",
            data={"csrfToken": token, "name": username, "password": password},
        )
        # The auth callback answers 302 on success and on failure; failures carry ?error=
        location = resp.headers.get("location", "")
        if resp.is_success or (resp.is_redirect and "error=" not in location):
            log_event(log, "login_ok", level=logging.DEBUG, username=username)
            return
        raise AuthRejected("login failed", status=resp.status_code, procedure="auth.login")

    # ========== Boards ==========

    async def get_board_by_name(self, name: str) -> Board:
        data = await self._query("board.getBoardByName", {"name": name})
        return _parse(Board.from_dict, data, "board.getBoardByName")

    async def get_writable_boards(self) -> List[BoardSummary]:
        data = await self._query("board.getAllBoards")
        if not isinstance(data, list):
            raise RemoteProtocol("board listing is not a list", procedure="board.getAllBoards")
        boards = [_parse(BoardSummary.from_dict, b, "board.getAllBoards") for b in data]
        return [b for b in boards if b.writable]

    async def create_board(self, name: str, column_count: int = 12, is_public: bool = True) -> str:
        data = await self._mutate(
            "board.createBoard",
            {"name": name, "columnCount": column_count, "isPublic": is_public},
        )
        board_id = data.get("boardId") if isinstance(data, dict) else None
        if not board_id:
            raise RemoteProtocol("createBoard returned no boardId", procedure="board.createBoard")
        return str(board_id)

    async def set_home_board(self, board_id: str) -> None:
        await self._mutate("board.setHomeBoard", {"id": board_id})

    async def set_color_scheme(self, scheme: str) -> None:
        await self._mutate("user.changeColorScheme", {"colorScheme": scheme})

    async def save_board_items(self, board: Board, items: Sequence[BoardItem]) -> None:
        """
        Replace the board's full item list.

        The API has no partial patch and no version token: this is last writer
        wins. Callers read the board, append, and write back; a tile a user adds
        between that read and this write is lost. Accepted for a single
        reconciler instance.
        """
        await self._mutate(
            "board.saveBoard",
            {
                "id": board.id,
                "sections": [s.to_dict() for s in board.sections],
                "items": [i.to_dict() for i in items],
                "integrations": [],
            },
        )

    # ========== Apps ==========

    async def get_all_apps(self) -> List[RemoteApp]:
        data = await self._query("app.all")
        if not isinstance(data, list):
            raise RemoteProtocol("app listing is not a list", procedure="app.all")
        return [_parse(RemoteApp.from_dict, a, "app.all") for a in data]

    async def upsert_app(self, existing_id: Optional[str], spec: AppSpec) -> str:
        """Create when existing_id is None, else update in place. The id never changes."""
        if existing_id is None:
            data = await self._mutate("app.create", spec.to_payload())
            app_id = None
            if isinstance(data, dict):
                app_id = data.get("appId") or data.get("id")
            if not app_id:
                raise RemoteProtocol("app.create returned no id", procedure="app.create")
            return str(app_id)

        await self._mutate("app.update", {"id": existing_id, **spec.to_payload()})
        return existing_id

    # ========== Transport ==========

    async def _query(self, procedure: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        params = {"input": dumps({"json": payload})} if payload is not None else None
        resp = await self._send("GET", f"{TRPC_PREFIX}/{procedure}", procedure=procedure, params=params)
        return _unwrap(resp, procedure)

    async def _mutate(
        self,
        procedure: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        retryable: bool = True,
    ) -> Any:
        resp = await self._send(
            "POST", f"{TRPC_PREFIX}/{procedure}", procedure=procedure,
            json={"json": payload}, headers=headers,
        )
        return _unwrap(resp, procedure, allow_empty=True, retryable=retryable)

    async def _send(self, method: str, path: str, procedure: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self.client.request(method, path, **kwargs)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            log_event(log, "remote_unavailable", level=logging.WARNING, procedure=procedure, error=str(exc))
            raise RemoteUnavailable(f"{procedure}: {exc}", procedure=procedure) from exc
        log.debug("%s %s -> %s", method, path, resp.status_code)
        return resp


def _unwrap(
    resp: httpx.Response, procedure: str, allow_empty: bool = False, retryable: bool = True,
) -> Any:
    """
    Envelope payload, or the mapped error.

    retryable=False turns 5xx into RemoteRejected so callers never repeat a
    non-idempotent mutation.
    """
    status = resp.status_code
    if status >= 500 and retryable:
        raise RemoteUnavailable(f"{procedure}: HTTP {status}", procedure=procedure)
    if status >= 400 or (not retryable and not 200 <= status < 300):
        message, code = _error_details(resp)
        if status in (401, 403) or code in ("UNAUTHORIZED", "FORBIDDEN"):
            raise AuthRejected(message, status=status, code=code, procedure=procedure)
        if status == 404 or code == "NOT_FOUND":
            raise NotFound(message, status=status, code=code, procedure=procedure)
        raise RemoteRejected(message, status=status, code=code, procedure=procedure)

    if allow_empty and not resp.content:
        return None
    body = _json_body(resp, procedure)
    try:
        data = body["result"]["data"]
    except (KeyError, TypeError):
        raise RemoteProtocol(f"{procedure}: response is not a tRPC envelope", procedure=procedure) from None
    if isinstance(data, dict) and "json" in data:
        return data["json"]
    if allow_empty:
        return data
    raise RemoteProtocol(f"{procedure}: envelope has no json payload", procedure=procedure)


def _json_body(resp: httpx.Response, procedure: str) -> Any:
    try:
        return resp.json()
    except ValueError:
        raise RemoteProtocol(f"{procedure}: body is not JSON", procedure=procedure) from None


def _error_details(resp: httpx.Response) -> tuple[str, Optional[str]]:
    try:
        err = resp.json()["error"]["json"]
        return str(err.get("message") or f"HTTP {resp.status_code}"), (err.get("data") or {}).get("code")
    except (ValueError, KeyError, TypeError):
        text = resp.text.strip()
        return (text[:300] or f"HTTP {resp.status_code}"), None


def _parse(factory: Any, data: Any, procedure: str) -> Any:
    try:
        return factory(data)
    except (KeyError, TypeError, ValueError) as exc:
        raise RemoteProtocol(f"{procedure}: malformed record ({exc})", procedure=procedure) from exc
