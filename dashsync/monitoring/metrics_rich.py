"""
Prometheus metrics for sync observability.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server


class SyncMetrics:
    """Counters and gauges updated by the reconciler and the daemon loop."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        reg = registry or CollectorRegistry()

        # === Cycle Metrics ===
        self.cycles = Counter(
            'dashsync_cycles_total',
            'Reconciliation cycles by outcome',
            labelnames=['outcome'],
            registry=reg
        )
        self.cycle_duration = Histogram(
            'dashsync_cycle_duration_seconds',
            'Wall time of one reconciliation cycle',
            buckets=[0.1, 0.5, 1, 2, 5, 10, 30, 60],
            registry=reg
        )
        self.last_sync_timestamp = Gauge(
            'dashsync_last_sync_timestamp_seconds',
            'Unix time of the last completed cycle',
            registry=reg
        )

        # === Entry Metrics ===
        self.apps_synced = Counter(
            'dashsync_apps_synced_total',
            'Apps created or updated on the dashboard',
            labelnames=['action'],
            registry=reg
        )
        self.entry_failures = Counter(
            'dashsync_entry_failures_total',
            'Desired entries skipped after an error',
            registry=reg
        )
        self.items_placed = Counter(
            'dashsync_items_placed_total',
            'Tiles added to a board',
            labelnames=['board'],
            registry=reg
        )
        self.removals_detected = Counter(
            'dashsync_removals_detected_total',
            'Tiles found deleted by a user and no longer re-added',
            labelnames=['board'],
            registry=reg
        )
        self.desired_entries = Gauge(
            'dashsync_desired_entries',
            'Desired entries loaded in the last cycle',
            registry=reg
        )

        self._registry = reg

    def get_registry(self) -> CollectorRegistry:
        return self._registry

    def serve(self, port: int) -> None:
        """Expose /metrics on a background thread."""
        start_http_server(port, registry=self._registry)
