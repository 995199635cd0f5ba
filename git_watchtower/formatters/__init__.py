"""Formatting utilities for git-watchtower.

- date: Relative time and duration formatting
- branch: Branch row cells and styles
- activity: Commit activity sparklines
"""

# Date formatters
from .date import format_time_ago, format_duration

# Branch formatters
from .branch import (
    format_branch_name,
    format_remote_status,
    format_pr_status,
    get_branch_style_type,
)

# Activity formatters
from .activity import format_sparkline

__all__ = [
    # Date
    "format_time_ago",
    "format_duration",
    # Branch
    "format_branch_name",
    "format_remote_status",
    "format_pr_status",
    "get_branch_style_type",
    # Activity
    "format_sparkline",
]
