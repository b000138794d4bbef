"""
Entry point wiring all components.

Exit codes:
    0  success (individual entry failures included)
    2  configuration failure
    3  authentication or transport failure while authenticating
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from dashsync import __version__
from dashsync.auth.credentials import CredentialManager
from dashsync.config.branding import Branding, load_branding
from dashsync.config.config import Settings
from dashsync.core.errors import ConfigError, RemoteError
from dashsync.daemon import SyncDaemon
from dashsync.discovery.containers import ContainerSource
from dashsync.discovery.registry import RegistrySource
from dashsync.infra.logging_cfg import build_logger, log_event
from dashsync.monitoring.metrics_rich import SyncMetrics
from dashsync.reconcile.reconciler import CycleResult, Reconciler, ReconcilerConfig
from dashsync.remote.board_client import BoardClient
from dashsync.state.reconciler_state import ReconcilerState
from dashsync.state.state import AtomicStateStore, StateStore

EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_AUTH = 3

log = logging.getLogger("dashsync")
console = Console()


@dataclass
class Components:
    client: BoardClient
    store: AtomicStateStore
    reconciler: Reconciler
    containers: Optional[ContainerSource] = None

    async def close(self) -> None:
        if self.containers is not None:
            await self.containers.close()
        await self.client.close()


def build_components(settings: Settings, branding: Branding, metrics: Optional[SyncMetrics] = None) -> Components:
    client = BoardClient(settings.homarr_url, timeout=settings.http_timeout)
    store = AtomicStateStore(settings.state_file)
    credentials = CredentialManager(
        client,
        store,
        auth_mode=settings.auth_mode,
        username=branding.credentials.admin_username,
        password=branding.credentials.admin_password,
        bootstrap_key_file=settings.bootstrap_key_file,
    )
    sources: List[object] = [RegistrySource(settings.registry_dir)]
    containers = None
    if settings.docker_enabled:
        containers = ContainerSource(settings.docker_socket, settings.label_prefix, settings.http_timeout)
        sources.append(containers)
    reconciler = Reconciler(
        client=client,
        store=store,
        credentials=credentials,
        sources=sources,
        branding=branding,
        config=ReconcilerConfig(
            board_scope=settings.board_scope,
            asset_server_url=settings.asset_server_url,
            onboarding_max_steps=settings.onboarding_max_steps,
            fallback_column_count=branding.board.column_count,
        ),
        metrics=metrics,
    )
    return Components(client=client, store=store, reconciler=reconciler, containers=containers)


# ========== Remote commands ==========

async def cmd_sync(settings: Settings, branding: Branding) -> int:
    parts = build_components(settings, branding)
    try:
        result = await parts.reconciler.run_cycle()
    finally:
        await parts.close()
    _print_result(result)
    return EXIT_OK


async def cmd_setup(settings: Settings, branding: Branding) -> int:
    parts = build_components(settings, branding)
    try:
        await parts.reconciler.setup()
    finally:
        await parts.close()
    console.print(f"First-boot setup complete for board [bold]{branding.board.name}[/bold]")
    return EXIT_OK


async def cmd_daemon(settings: Settings, branding: Branding) -> int:
    metrics = SyncMetrics()
    if settings.metrics_port:
        metrics.serve(settings.metrics_port)
        log_event(log, "metrics_server_started", port=settings.metrics_port)

    parts = build_components(settings, branding, metrics)
    daemon = SyncDaemon(
        parts.reconciler,
        interval_sec=settings.sync_interval_sec,
        retry_backoff_sec=settings.retry_backoff_sec,
        events=parts.containers,
        metrics=metrics,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, daemon.stop)
        except NotImplementedError:
            pass

    try:
        await daemon.run()
    finally:
        log.info("Closing connections...")
        await parts.close()
    return EXIT_OK


# ========== Local state commands ==========

def cmd_status(settings: Settings) -> int:
    state = StateStore(settings.state_file).load()
    _print_status(settings, state)
    return EXIT_OK


def cmd_reset(settings: Settings) -> int:
    if StateStore(settings.state_file).reset():
        console.print(f"Removed {settings.state_file}; the next run repeats first-boot setup.")
    else:
        console.print(f"No state file at {settings.state_file}")
    return EXIT_OK


def cmd_mark_removed(settings: Settings, board: str, url: str) -> int:
    store = StateStore(settings.state_file)
    state = store.load()
    state.mark_removed(board, url)
    store.save(state)
    console.print(f"{url} will no longer be added to board {board}")
    return EXIT_OK


def cmd_restore(settings: Settings, board: str, url: str) -> int:
    store = StateStore(settings.state_file)
    state = store.load()
    dropped = state.restore(board, url)
    if dropped:
        store.save(state)
    if state.is_removed(board, url):
        # Still blocked by a removal recorded for every board
        console.print(f"{url} is removed on all boards; run restore '*' {url} to allow it back")
    elif dropped:
        console.print(f"{url} will be re-added to board {board} on the next sync")
    else:
        console.print(f"{url} is not marked removed on board {board}")
    return EXIT_OK


# ========== Rendering ==========

def _print_result(result: CycleResult) -> None:
    if result.skipped_reason:
        console.print(f"[yellow]Sync skipped:[/yellow] {result.skipped_reason}")
        return
    table = Table(title="Sync result", show_header=False)
    table.add_row("Boards", ", ".join(result.boards))
    table.add_row("Entries", str(result.entries_seen))
    table.add_row("Apps created", str(result.apps_created))
    table.add_row("Apps updated", str(result.apps_updated))
    table.add_row("Tiles placed", str(result.items_placed))
    table.add_row("Removals detected", str(result.removals_detected))
    table.add_row("Entries failed", str(result.entries_failed))
    table.add_row("Duration", f"{result.duration_sec:.2f}s")
    console.print(table)


def _print_status(settings: Settings, state: ReconcilerState) -> None:
    summary = Table(title="dashsync state", show_header=False)
    summary.add_row("State file", settings.state_file)
    summary.add_row("First boot completed", "yes" if state.first_boot_completed else "no")
    summary.add_row("API key cached", "yes" if state.api_key else "no")
    summary.add_row("Last sync", state.last_sync.isoformat() if state.last_sync else "never")
    console.print(summary)

    if state.discovered:
        apps = Table(title="Synced apps")
        apps.add_column("URL")
        apps.add_column("Name")
        apps.add_column("Container")
        apps.add_column("Boards")
        apps.add_column("Added")
        for url, record in sorted(state.discovered.items()):
            apps.add_row(
                url,
                record.name,
                record.container_id or "-",
                ", ".join(sorted(record.boards)) or "-",
                record.added_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(apps)

    if state.removed:
        removed = Table(title="Removed by user")
        removed.add_column("Board")
        removed.add_column("URL")
        for board, urls in sorted(state.removed.items()):
            for url in sorted(urls):
                removed.add_row("all boards" if board == "*" else board, url)
        console.print(removed)


# ========== CLI ==========

def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="dashsync",
        description="Keep dashboard boards in sync with installed web apps.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    parser.add_argument("--env-file", default=None, help="Read settings from this .env file")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("sync", help="Run one reconciliation cycle")
    sub.add_parser("setup", help="Run first-boot setup only")
    sub.add_parser("daemon", help="Sync on a timer and on container events")
    sub.add_parser("status", help="Show persisted state")
    sub.add_parser("reset", help="Delete the state file")

    for name, help_text in (
        ("mark-removed", "Stop adding an app to a board"),
        ("restore", "Allow a removed app back onto a board"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("board", help="Board id, or * for every board")
        p.add_argument("url", help="App URL")

    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    build_logger("dashsync", level=logging.DEBUG if args.debug else logging.INFO)

    try:
        settings = Settings.load(args.env_file)
        build_logger(
            "dashsync",
            level=logging.DEBUG if (args.debug or settings.debug) else logging.INFO,
            file_path=settings.log_file,
        )

        if args.command == "status":
            return cmd_status(settings)
        if args.command == "reset":
            return cmd_reset(settings)
        if args.command == "mark-removed":
            return cmd_mark_removed(settings, args.board, args.url)
        if args.command == "restore":
            return cmd_restore(settings, args.board, args.url)

        branding = load_branding(settings.branding_file)
        if args.command == "sync":
            return asyncio.run(cmd_sync(settings, branding))
        if args.command == "setup":
            return asyncio.run(cmd_setup(settings, branding))
        return asyncio.run(cmd_daemon(settings, branding))
    except ConfigError as exc:
        log_event(log, "config_error", level=logging.ERROR, error=str(exc))
        return EXIT_CONFIG
    except RemoteError as exc:
        log_event(
            log, "auth_phase_failed", level=logging.ERROR,
            error=str(exc), error_type=type(exc).__name__, procedure=exc.procedure,
        )
        return EXIT_AUTH
    except KeyboardInterrupt:
        log.info("Stopped by user")
        return EXIT_OK


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
