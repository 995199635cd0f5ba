"""Commit activity sparklines."""

from typing import Sequence

from git_watchtower.constants import SPARKLINE_CHARS, SPARKLINE_DAYS


def format_sparkline(counts: Sequence[int], width: int = SPARKLINE_DAYS) -> str:
    """
    Render daily commit counts as a block-character sparkline.

    Each count is scaled against the busiest day. Days without commits are
    blank, so a branch with no recent activity renders as ``width`` spaces.

    Args:
        counts: Commits per day, oldest first
        width: Number of days shown; shorter input is padded on the left

    Returns:
        A string of exactly ``width`` characters, e.g. "  ▃ ▁█ "
    """
    days = list(counts)[-width:] if width else []
    days = [0] * (width - len(days)) + [max(0, int(c)) for c in days]
    peak = max(days, default=0)
    if peak == 0:
        return " " * width

    top = len(SPARKLINE_CHARS) - 1
    chars = []
    for count in days:
        if count == 0:
            chars.append(" ")
        else:
            chars.append(SPARKLINE_CHARS[min(top, count * top // peak)])
    return "".join(chars)
