"""
Monitoring package.

Prometheus metrics for reconciliation cycles.
"""

from dashsync.monitoring.metrics_rich import SyncMetrics

__all__ = ["SyncMetrics"]
