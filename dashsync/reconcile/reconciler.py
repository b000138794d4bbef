"""
Reconciler: brings the dashboard boards in line with the desired app entries.

One cycle:
    1. load state; first-boot setup if needed, then authenticate
    2. pick target boards (configured board, or every writable board)
    3. fetch the remote app list once
    4. load desired entries, drop hidden ones
    5. per entry: upsert the app by URL, refresh its discovery record, then per
       board place a tile unless the user removed it there
    6. stamp last_sync and save state once

Per-entry failures are logged and skipped. Listing failures (apps, boards)
degrade to empty lists. Authentication failures propagate: nothing else can
work without a credential.

Concurrency:
    Strictly sequential awaits. Board writes replace the whole item list, so
    two in-flight writes to one board would drop each other's tiles.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

from dashsync.auth.onboarding import OnboardingStateMachine
from dashsync.core.errors import AdapterError, NotFound, RemoteError, RemoteRejected
from dashsync.core.json_utils import dumps
from dashsync.discovery.models import AppEntry
from dashsync.discovery.registry import load_desired_entries
from dashsync.layout.placement import next_position
from dashsync.remote.icons import transform_icon_url
from dashsync.remote.models import AppSpec, Board, BoardItem, ItemLayout, RemoteApp
from dashsync.state.reconciler_state import ReconcilerState

if TYPE_CHECKING:
    from dashsync.auth.credentials import CredentialManager
    from dashsync.config.branding import Branding
    from dashsync.monitoring.metrics_rich import SyncMetrics
    from dashsync.remote.board_client import BoardClient
    from dashsync.state.state import AtomicStateStore

log = logging.getLogger("dashsync")


@dataclass
class ReconcilerConfig:
    """Configuration for Reconciler."""
    # default: one configured board; writable: every board we may modify
    board_scope: str = "default"

    # Icon rewriting
    asset_server_url: str = "http://localhost:8771"

    # Onboarding polling cap
    onboarding_max_steps: int = 25

    # Grid width when a board reports no layout template
    fallback_column_count: int = 12

    # Logging callback
    log_event_callback: Optional[Callable[..., None]] = None


@dataclass
class CycleResult:
    """Outcome of one reconciliation cycle."""
    success: bool = True
    entries_seen: int = 0
    apps_created: int = 0
    apps_updated: int = 0
    apps_unchanged: int = 0
    items_placed: int = 0
    removals_detected: int = 0
    entries_failed: int = 0
    boards: List[str] = field(default_factory=list)
    skipped_reason: Optional[str] = None
    duration_sec: float = 0.0

    @property
    def apps_synced(self) -> int:
        return self.apps_created + self.apps_updated + self.apps_unchanged


class Reconciler:
    """
    Usage:
        reconciler = Reconciler(
            client=board_client,
            store=AtomicStateStore(settings.state_file),
            credentials=credential_manager,
            sources=[RegistrySource(settings.registry_dir)],
            branding=branding,
            config=ReconcilerConfig(asset_server_url=settings.asset_server_url),
        )
        result = await reconciler.run_cycle()
    """

    def __init__(
        self,
        client: "BoardClient",
        store: "AtomicStateStore",
        credentials: "CredentialManager",
        sources: Sequence[Any],
        branding: "Branding",
        config: Optional[ReconcilerConfig] = None,
        metrics: Optional["SyncMetrics"] = None,
    ) -> None:
        self.client = client
        self.store = store
        self.credentials = credentials
        self.sources = list(sources)
        self.branding = branding
        self.config = config or ReconcilerConfig()
        self.metrics = metrics
        self._log_event = self.config.log_event_callback or self._default_log

    def _default_log(self, event: str, level: int = logging.INFO, **kwargs: Any) -> None:
        log.log(level, dumps({"event": event, **kwargs}))

    # ========== Cycle ==========

    async def run_cycle(self) -> CycleResult:
        started = time.monotonic()
        result = CycleResult()
        self._log_event("cycle_start")

        state = await self.store.load()
        await self.ensure_ready(state)

        boards = await self._target_boards()
        if not boards:
            result.skipped_reason = "no_target_boards"
            result.duration_sec = time.monotonic() - started
            self._log_event("cycle_skipped", level=logging.WARNING, reason=result.skipped_reason)
            self._count_cycle("skipped", result)
            return result
        result.boards = [b.name for b in boards]

        apps, apps_listed = await self._fetch_apps()
        entries = [e for e in await load_desired_entries(self.sources) if not e.hidden]
        result.entries_seen = len(entries)
        if self.metrics:
            self.metrics.desired_entries.set(len(entries))

        for entry in entries:
            try:
                await self._sync_entry(entry, state, boards, apps, result, apps_listed=apps_listed)
            except AdapterError as exc:
                result.entries_failed += 1
                self._log_event(
                    "entry_sync_failed", level=logging.WARNING,
                    url=entry.url, app=entry.name, error=str(exc), error_type=type(exc).__name__,
                )
                if self.metrics:
                    self.metrics.entry_failures.inc()

        state.update_sync_time()
        await self.store.save(state)

        result.duration_sec = time.monotonic() - started
        self._log_event(
            "cycle_complete",
            boards=result.boards,
            entries=result.entries_seen,
            created=result.apps_created,
            updated=result.apps_updated,
            placed=result.items_placed,
            removed=result.removals_detected,
            failed=result.entries_failed,
            duration_sec=round(result.duration_sec, 3),
        )
        self._count_cycle("ok", result)
        if self.metrics and state.last_sync:
            self.metrics.last_sync_timestamp.set(state.last_sync.timestamp())
        return result

    async def ensure_ready(self, state: ReconcilerState) -> None:
        """Run first-boot setup when it has not completed yet, else just authenticate."""
        if not state.first_boot_completed:
            self._log_event("first_boot_detected")
            await self.run_setup(state)
        else:
            await self.credentials.acquire(state)

    async def setup(self) -> None:
        """Standalone first-boot setup (CLI `setup`)."""
        state = await self.store.load()
        await self.run_setup(state)

    async def run_setup(self, state: ReconcilerState) -> None:
        """
        Onboarding wizard, login, default board, pinned tile, home board, theme.

        Marks first boot complete and saves state immediately so a later crash
        does not repeat the wizard.
        """
        creds = self.branding.credentials
        machine = OnboardingStateMachine(
            self.client,
            creds.admin_username,
            creds.admin_password,
            self.branding.settings.to_payload(),
            max_steps=self.config.onboarding_max_steps,
        )
        onboarding = await machine.run()
        self._log_event("onboarding_complete", steps=onboarding.steps_taken)

        await self.credentials.acquire(state)

        board = await self._ensure_board(self.branding.board.name)
        pinned = self.branding.board.pinned
        if pinned.enabled:
            apps, apps_listed = await self._fetch_apps()
            await self._sync_entry(
                pinned.to_entry(), state, [board], apps, CycleResult(), apps_listed=apps_listed,
            )

        try:
            await self.client.set_home_board(board.id)
            await self.client.set_color_scheme(self.branding.color_scheme)
        except RemoteRejected as exc:
            self._log_event("setup_preferences_rejected", level=logging.WARNING, error=str(exc))

        state.first_boot_completed = True
        await self.store.save(state)
        self._log_event("first_boot_complete", board=board.name)

    # ========== Boards ==========

    async def _target_boards(self) -> List[Board]:
        if self.config.board_scope == "writable":
            try:
                summaries = await self.client.get_writable_boards()
            except RemoteError as exc:
                self._log_event("board_listing_failed", level=logging.WARNING, error=str(exc))
                return []
            boards: List[Board] = []
            for summary in summaries:
                try:
                    boards.append(await self.client.get_board_by_name(summary.name))
                except RemoteError as exc:
                    self._log_event("board_fetch_failed", level=logging.WARNING, board=summary.name, error=str(exc))
            return boards

        try:
            return [await self._ensure_board(self.branding.board.name)]
        except RemoteError as exc:
            self._log_event("board_fetch_failed", level=logging.WARNING, board=self.branding.board.name, error=str(exc))
            return []

    async def _ensure_board(self, name: str) -> Board:
        try:
            return await self.client.get_board_by_name(name)
        except NotFound:
            pass
        cfg = self.branding.board
        board_id = await self.client.create_board(name, cfg.column_count, cfg.is_public)
        self._log_event("board_created", board=name, board_id=board_id)
        return await self.client.get_board_by_name(name)

    # ========== Apps ==========

    async def _fetch_apps(self) -> Tuple[List[RemoteApp], bool]:
        """Remote app list, and whether it was actually fetched."""
        try:
            return await self.client.get_all_apps(), True
        except RemoteError as exc:
            # Dedup becomes best-effort: duplicates are possible this cycle
            self._log_event("app_listing_failed", level=logging.WARNING, error=str(exc))
            return [], False

    def _app_spec(self, entry: AppEntry) -> AppSpec:
        ping_url = None if entry.is_external else (entry.ping_url or entry.url)
        return AppSpec(
            name=entry.name,
            href=entry.url,
            icon_url=transform_icon_url(entry.icon_url, self.config.asset_server_url),
            description=entry.description or "",
            ping_url=ping_url,
        )

    async def _sync_entry(
        self,
        entry: AppEntry,
        state: ReconcilerState,
        boards: Sequence[Board],
        apps: List[RemoteApp],
        result: CycleResult,
        apps_listed: bool = True,
    ) -> None:
        spec = self._app_spec(entry)
        existing = _find_by_href(apps, entry.url)

        if existing is None:
            app_id = await self.client.upsert_app(None, spec)
            # Later entries with the same URL in this cycle must find it
            apps.append(RemoteApp(
                id=app_id, name=spec.name, icon_url=spec.icon_url, href=spec.href,
                description=spec.description or None, ping_url=spec.ping_url,
            ))
            result.apps_created += 1
            self._log_event("app_created", url=entry.url, app=entry.name, app_id=app_id)
            self._count_app("created")
        elif _matches(existing, spec):
            app_id = existing.id
            result.apps_unchanged += 1
        else:
            app_id = await self.client.upsert_app(existing.id, spec)
            result.apps_updated += 1
            self._log_event("app_updated", url=entry.url, app=entry.name, app_id=app_id)
            self._count_app("updated")

        state.record_discovered(entry.url, entry.name, entry.container_id or "")

        for board in boards:
            await self._place(entry, app_id, board, state, result, apps, apps_listed)

    async def _place(
        self,
        entry: AppEntry,
        app_id: str,
        board: Board,
        state: ReconcilerState,
        result: CycleResult,
        apps: Sequence[RemoteApp],
        apps_listed: bool,
    ) -> None:
        url = entry.url
        if state.is_removed(board.id, url):
            self._log_event("removed_by_user_skip", level=logging.DEBUG, url=url, board=board.name)
            return

        if _has_tile_for(board, app_id, url, apps):
            state.mark_placed(board.id, url)
            return

        if state.was_placed_on(board.id, url):
            if not apps_listed:
                # The tile may reference an app id we could not resolve this cycle
                self._log_event("removal_check_skipped", level=logging.DEBUG, url=url, board=board.name)
                return
            # We put a tile here before and it is gone: a user deleted it
            state.mark_removed(board.id, url)
            result.removals_detected += 1
            self._log_event("removal_detected", url=url, board=board.name)
            if self.metrics:
                self.metrics.removals_detected.labels(board=board.name).inc()
            return

        columns = board.column_count(self.config.fallback_column_count)
        pref = entry.layout
        width = min(pref.width, columns)
        if pref.has_explicit_position:
            x, y = pref.x_offset, pref.y_offset
        else:
            x, y = next_position(board.items, columns, width=width)

        layout = board.first_layout
        item = BoardItem.for_app(
            # Item ids are global on the dashboard, not per board
            item_id=f"dashsync-{board.id}-{app_id}",
            app_id=app_id,
            layout=ItemLayout(
                layout_id=layout.id if layout else "",
                section_id=board.first_section_id,
                x_offset=x,
                y_offset=y,
                width=width,
                height=pref.height,
            ),
        )
        items = [*board.items, item]
        await self.client.save_board_items(board, items)
        board.items = items
        state.mark_placed(board.id, url)

        result.items_placed += 1
        self._log_event("item_placed", url=url, board=board.name, x=x, y=y)
        if self.metrics:
            self.metrics.items_placed.labels(board=board.name).inc()

    # ========== Metrics ==========

    def _count_cycle(self, outcome: str, result: CycleResult) -> None:
        if self.metrics:
            self.metrics.cycles.labels(outcome=outcome).inc()
            self.metrics.cycle_duration.observe(result.duration_sec)

    def _count_app(self, action: str) -> None:
        if self.metrics:
            self.metrics.apps_synced.labels(action=action).inc()


def _find_by_href(apps: Sequence[RemoteApp], url: str) -> Optional[RemoteApp]:
    for app in apps:
        if app.href == url:
            return app
    return None


def _has_tile_for(board: Board, app_id: str, url: str, apps: Sequence[RemoteApp]) -> bool:
    """True when any item on the board points at this app or another app with the same href."""
    hrefs = {app.id: app.href for app in apps}
    return any(
        item.app_id is not None and (item.app_id == app_id or hrefs.get(item.app_id) == url)
        for item in board.items
    )


def _matches(existing: RemoteApp, spec: AppSpec) -> bool:
    return (
        existing.name == spec.name
        and existing.icon_url == spec.icon_url
        and (existing.description or "") == spec.description
        and existing.ping_url == spec.ping_url
    )
