"""Shared constants for git-watchtower."""

from dataclasses import dataclass
from typing import List


@dataclass
class ColumnDefinition:
    """Definition of a table column."""

    key: str
    label: str
    width: int = 0  # 0 means auto-width


COLUMNS: List[ColumnDefinition] = [
    ColumnDefinition("branch", "Branch", 32),
    ColumnDefinition("updated", "Updated", 12),
    ColumnDefinition("commit", "Commit", 9),
    ColumnDefinition("remote", "Remote", 7),
    ColumnDefinition("pr", "PR", 16),
    ColumnDefinition("activity", "7d", 8),
    ColumnDefinition("subject", "Last Commit", 0),
]


# Symbol constants
SYMBOL_HAS_REMOTE = "✓"
SYMBOL_NO_REMOTE = "✗"
SYMBOL_REMOTE_ONLY = "☁"
SYMBOL_HAS_UPDATES = "↓"
SYMBOL_CURRENT_BRANCH = " *"
SYMBOL_NEW = "✦ "
SYMBOL_DELETED = "✗ "
SYMBOL_CHECKS_PASS = "✓"
SYMBOL_CHECKS_FAIL = "✗"
SYMBOL_CHECKS_PENDING = "…"
SYMBOL_APPROVED = "👍"

# Commit activity sparkline, lowest to highest
SPARKLINE_CHARS = "▁▂▃▄▅▆▇█"
SPARKLINE_DAYS = 7


class BranchStyleType:
    """Style types for branch rows."""

    CURRENT = "current"
    NEW = "new"
    UPDATED = "updated"
    MERGED = "merged"
    DELETED = "deleted"
    ACTIVE = "active"


# TUI colors (color names for Textual/Rich markup)
TUI_COLORS = {
    BranchStyleType.CURRENT: "cyan",
    BranchStyleType.NEW: "magenta",
    BranchStyleType.UPDATED: "yellow",
    BranchStyleType.MERGED: "bright_black",
    BranchStyleType.DELETED: "red",
    BranchStyleType.ACTIVE: "green",
}

# Activity log and flash colors by entry kind
LOG_COLORS = {
    "info": "white",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "update": "cyan",
}

# Polling indicator per polling_status
POLLING_INDICATORS = {
    "idle": "[green]●[/green]",
    "fetching": "[yellow]⟳[/yellow]",
    "error": "[red]●[/red]",
}
OFFLINE_INDICATOR = "[red]⊘[/red]"
