"""
Reconciliation package.
"""

from dashsync.reconcile.reconciler import CycleResult, Reconciler, ReconcilerConfig

__all__ = [
    "CycleResult",
    "Reconciler",
    "ReconcilerConfig",
]
