"""
Long-running sync loop.

A periodic timer and the container event stream both feed one asyncio.Event.
The loop clears it right before a cycle starts, so any number of triggers that
arrive while a cycle runs collapse into a single follow-up cycle. A running
cycle is never interrupted by a trigger.

Failure policy:
    RemoteUnavailable          -> retry after retry_backoff_sec
    other RemoteError          -> log, wait for the next trigger
    ConfigError, AuthRejected,
    OnboardingStuck            -> propagate (the process exits)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, TYPE_CHECKING

import httpx

from dashsync.core.errors import AuthRejected, OnboardingStuck, RemoteError, RemoteUnavailable
from dashsync.infra.logging_cfg import log_event

if TYPE_CHECKING:
    from dashsync.discovery.containers import ContainerSource
    from dashsync.monitoring.metrics_rich import SyncMetrics
    from dashsync.reconcile.reconciler import Reconciler

log = logging.getLogger("dashsync")


class SyncDaemon:
    def __init__(
        self,
        reconciler: "Reconciler",
        interval_sec: float,
        retry_backoff_sec: float,
        events: Optional["ContainerSource"] = None,
        metrics: Optional["SyncMetrics"] = None,
    ) -> None:
        self.reconciler = reconciler
        self.interval_sec = interval_sec
        self.retry_backoff_sec = retry_backoff_sec
        self.events = events
        self.metrics = metrics
        self.cycles_run = 0
        self._trigger = asyncio.Event()
        self._stopping = asyncio.Event()

    def trigger(self, reason: str) -> None:
        if not self._trigger.is_set():
            log_event(log, "sync_triggered", level=logging.DEBUG, reason=reason)
        self._trigger.set()

    def stop(self) -> None:
        self._stopping.set()
        self._trigger.set()

    async def run(self) -> None:
        watcher = asyncio.create_task(self._watch_events()) if self.events else None
        log_event(log, "daemon_start", interval_sec=self.interval_sec, events=self.events is not None)
        self._trigger.set()
        try:
            delay = self.interval_sec
            while not self._stopping.is_set():
                await self._wait_for_trigger(delay)
                if self._stopping.is_set():
                    break
                self._trigger.clear()
                delay = await self._run_once()
        finally:
            if watcher is not None:
                watcher.cancel()
                await asyncio.gather(watcher, return_exceptions=True)
            log_event(log, "daemon_stop", cycles=self.cycles_run)

    async def _wait_for_trigger(self, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._trigger.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            self._trigger.set()

    async def _run_once(self) -> float:
        """Run one cycle and return the delay before the timer fires again."""
        self.cycles_run += 1
        try:
            await self.reconciler.run_cycle()
        except (AuthRejected, OnboardingStuck):
            self._count("fatal")
            raise
        except RemoteUnavailable as exc:
            self._count("unavailable")
            log_event(
                log, "cycle_retry_scheduled", level=logging.WARNING,
                error=str(exc), procedure=exc.procedure, backoff_sec=self.retry_backoff_sec,
            )
            return self.retry_backoff_sec
        except RemoteError as exc:
            self._count("failed")
            log_event(log, "cycle_failed", level=logging.ERROR, error=str(exc), error_type=type(exc).__name__)
        return self.interval_sec

    async def _watch_events(self) -> None:
        assert self.events is not None
        while not self._stopping.is_set():
            try:
                async for event in self.events.events():
                    if event.started and await self._unlabeled(event.container_id):
                        continue
                    log_event(log, "container_event", action=event.action, container=event.container_id[:12])
                    self.trigger(f"container_{event.action}")
            except httpx.HTTPError as exc:
                log_event(log, "event_stream_error", level=logging.WARNING, url="docker:/events", error=str(exc))
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.retry_backoff_sec)
            except asyncio.TimeoutError:
                continue

    async def _unlabeled(self, container_id: str) -> bool:
        """True when a started container carries no dashboard labels."""
        try:
            entry = await self.events.inspect(container_id)
        except httpx.HTTPError:
            return False
        return entry is None

    def _count(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.cycles.labels(outcome=outcome).inc()
