"""
Pytest configuration and shared fakes.

FakeDashboard is an in-memory stand-in for BoardClient: same coroutine
methods, boards and apps kept in dicts, and a call log for assertions.
"""

import copy
from typing import Any, Dict, List, Optional

import pytest

from dashsync.config.branding import parse_branding
from dashsync.core.errors import NotFound, RemoteRejected, RemoteUnavailable
from dashsync.discovery.models import AppEntry, AppKind, LayoutPreference
from dashsync.remote.models import (
    Board,
    BoardItem,
    BoardSummary,
    ItemLayout,
    LayoutTemplate,
    RemoteApp,
    Section,
)


class FakeDashboard:
    def __init__(self, onboarding_steps: Optional[List[str]] = None) -> None:
        self.onboarding_steps = list(onboarding_steps or ["finish"])
        self.boards: Dict[str, Board] = {}
        self.read_only: set = set()
        self.apps: Dict[str, RemoteApp] = {}
        self.calls: List[tuple] = []
        self.fail_upsert_for: set = set()
        self.fail_app_listing = False
        self.fail_board_listing = False
        self.home_board: Optional[str] = None
        self.color_scheme: Optional[str] = None
        self.api_key: Optional[str] = None
        self._next_id = 1

    def _id(self, prefix: str) -> str:
        value = f"{prefix}{self._next_id}"
        self._next_id += 1
        return value

    def calls_to(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    # ---- test helpers ----

    def add_board(self, name: str, column_count: int = 12, writable: bool = True) -> Board:
        board_id = self._id("board-")
        board = Board(
            id=board_id,
            name=name,
            sections=[Section(id=f"{board_id}-section", kind="empty")],
            layouts=[LayoutTemplate(id=f"{board_id}-layout", column_count=column_count)],
        )
        self.boards[board_id] = board
        if not writable:
            self.read_only.add(board_id)
        return board

    def board_named(self, name: str) -> Board:
        for board in self.boards.values():
            if board.name == name:
                return board
        raise KeyError(name)

    def delete_tile(self, board_name: str, app_id: str) -> None:
        board = self.board_named(board_name)
        board.items = [i for i in board.items if i.app_id != app_id]

    def app_by_href(self, href: str) -> RemoteApp:
        return next(a for a in self.apps.values() if a.href == href)

    # ---- onboarding ----

    async def get_onboarding_step(self) -> str:
        self.calls.append(("get_onboarding_step",))
        return self.onboarding_steps[0]

    def _pop_step(self) -> None:
        if len(self.onboarding_steps) > 1:
            self.onboarding_steps.pop(0)

    async def advance_onboarding(self) -> None:
        self.calls.append(("advance_onboarding",))
        self._pop_step()

    async def create_initial_user(self, username: str, password: str) -> None:
        self.calls.append(("create_initial_user", username))
        self._pop_step()

    async def apply_settings(self, settings: Dict[str, Any]) -> None:
        self.calls.append(("apply_settings",))
        self._pop_step()

    # ---- credentials ----

    async def login(self, username: str, password: str) -> None:
        self.calls.append(("login", username))

    def use_api_key(self, api_key: str) -> None:
        self.api_key = api_key

    async def rotate_api_key(self, bootstrap_key: str) -> str:
        self.calls.append(("rotate_api_key", bootstrap_key))
        return "permanent-key"

    # ---- boards ----

    async def get_board_by_name(self, name: str) -> Board:
        self.calls.append(("get_board_by_name", name))
        try:
            return copy.deepcopy(self.board_named(name))
        except KeyError:
            raise NotFound(f"board {name} not found", status=404, code="NOT_FOUND") from None

    async def get_writable_boards(self) -> List[BoardSummary]:
        self.calls.append(("get_writable_boards",))
        if self.fail_board_listing:
            raise RemoteUnavailable("down", procedure="board.getAllBoards")
        return [
            BoardSummary(id=b.id, name=b.name, writable=True)
            for b in self.boards.values()
            if b.id not in self.read_only
        ]

    async def create_board(self, name: str, column_count: int = 12, is_public: bool = True) -> str:
        self.calls.append(("create_board", name))
        return self.add_board(name, column_count).id

    async def set_home_board(self, board_id: str) -> None:
        self.home_board = board_id

    async def set_color_scheme(self, scheme: str) -> None:
        self.color_scheme = scheme

    async def save_board_items(self, board: Board, items: List[BoardItem]) -> None:
        self.calls.append(("save_board_items", board.id, len(items)))
        self.boards[board.id].items = copy.deepcopy(list(items))

    # ---- apps ----

    async def get_all_apps(self) -> List[RemoteApp]:
        self.calls.append(("get_all_apps",))
        if self.fail_app_listing:
            raise RemoteUnavailable("down", procedure="app.all")
        return list(self.apps.values())

    async def upsert_app(self, existing_id: Optional[str], spec) -> str:
        self.calls.append(("upsert_app", existing_id, spec.href))
        if spec.href in self.fail_upsert_for:
            raise RemoteRejected("invalid app", status=400, code="BAD_REQUEST", procedure="app.create")
        app_id = existing_id or self._id("app-")
        self.apps[app_id] = RemoteApp(
            id=app_id,
            name=spec.name,
            icon_url=spec.icon_url,
            href=spec.href,
            description=spec.description or None,
            ping_url=spec.ping_url,
        )
        return app_id


class StaticSource:
    def __init__(self, entries: List[AppEntry]) -> None:
        self.entries = entries

    async def load(self) -> List[AppEntry]:
        return list(self.entries)


def make_entry(name: str, url: str, priority: int = 50, **kwargs: Any) -> AppEntry:
    layout = LayoutPreference(
        priority=priority,
        width=kwargs.pop("width", 1),
        height=kwargs.pop("height", 1),
        x_offset=kwargs.pop("x_offset", None),
        y_offset=kwargs.pop("y_offset", None),
    )
    kwargs.setdefault("kind", AppKind.CONTAINER)
    return AppEntry(name=name, url=url, layout=layout, source="test", **kwargs)


def placed(board: Board, app_id: str) -> ItemLayout:
    item = next(i for i in board.items if i.app_id == app_id)
    return item.layouts[0]


BRANDING_DOC = {
    "credentials": {"admin_username": "admin", "admin_password": "s3cret"},
    "board": {"name": "Home", "column_count": 12},
    "theme": {"default_color_scheme": "dark"},
}


@pytest.fixture
def branding():
    return parse_branding(copy.deepcopy(BRANDING_DOC))


@pytest.fixture
def dashboard():
    return FakeDashboard()
