"""Utility functions for git-watchtower.

This package provides utility modules:
- concurrency: asyncio mutex, timeout, retry, debounce and throttle helpers
"""

from .concurrency import (
    Mutex,
    with_timeout,
    retry,
    sleep,
    Debouncer,
    Throttler,
    debounce,
    throttle,
)

__all__ = [
    "Mutex",
    "with_timeout",
    "retry",
    "sleep",
    "Debouncer",
    "Throttler",
    "debounce",
    "throttle",
]
