"""Per-cycle branch reconciliation for git-watchtower."""

from .engine import (
    AdaptiveInterval,
    PollCycleResult,
    Selection,
    apply_changes,
    calculate_adaptive_interval,
    detect_deleted_branches,
    detect_new_branches,
    detect_updated_branches,
    reconcile_branches,
    restore_selection,
    sort_branches,
)

__all__ = [
    "AdaptiveInterval",
    "PollCycleResult",
    "Selection",
    "apply_changes",
    "calculate_adaptive_interval",
    "detect_deleted_branches",
    "detect_new_branches",
    "detect_updated_branches",
    "reconcile_branches",
    "restore_selection",
    "sort_branches",
]
