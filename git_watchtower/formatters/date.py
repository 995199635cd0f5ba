"""Date and time formatting utilities."""

from datetime import datetime, timezone
from typing import Optional


def format_time_ago(date: datetime, now: Optional[datetime] = None) -> str:
    """
    Format a datetime as a short relative time.

    Args:
        date: Point in time (naive datetimes are treated as UTC)
        now: Reference time, defaults to the current time

    Returns:
        "just now", "42s ago", "5m ago", "3h ago", "1 day ago" or "N days ago"
    """
    if date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    seconds = int((now - date).total_seconds())
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if seconds < 10:
        return "just now"
    if seconds < 60:
        return f"{seconds}s ago"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days == 1:
        return "1 day ago"
    return f"{days} days ago"


def format_duration(milliseconds: float) -> str:
    """Format a duration in milliseconds as e.g. "850ms" or "12.3s"."""
    if milliseconds < 1000:
        return f"{int(milliseconds)}ms"
    return f"{milliseconds / 1000:.1f}s"
