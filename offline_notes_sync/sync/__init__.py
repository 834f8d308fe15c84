"""
Synchronization engine.

Reconciles the local store with the remote authority:
- Reconciler: push pending records, then pull the remote record set
- SyncScheduler: single-flight passes with connectivity wait and backoff
- SyncCoordinator: derived sync status and sync triggers
"""

from .connectivity import ConnectivityMonitor
from .coordinator import SyncCoordinator, SyncStatus, derive_status
from .reconciler import ReconcileResult, Reconciler
from .scheduler import BackoffPolicy, SyncScheduler

__all__ = [
    "ConnectivityMonitor",
    "Reconciler",
    "ReconcileResult",
    "BackoffPolicy",
    "SyncScheduler",
    "SyncCoordinator",
    "SyncStatus",
    "derive_status",
]
