"""Widget-side reconciliation of server snapshots."""

from .models import SessionView, StateSnapshot, WindowGroup
from .names import NameStore
from .reconcile import (
    ReconciliationEngine,
    StaleTracker,
    build_window_groups,
    stable_order,
)
from .snapshot import SnapshotClient, SnapshotError

__all__ = [
    "NameStore",
    "ReconciliationEngine",
    "SessionView",
    "SnapshotClient",
    "SnapshotError",
    "StaleTracker",
    "StateSnapshot",
    "WindowGroup",
    "build_window_groups",
    "stable_order",
]
