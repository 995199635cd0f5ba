"""Centralized application state for git-watchtower.

One Store instance per process holds an immutable AppState. Every write goes
through ``Store.set_state``: updates pass through the middleware chain, are
validated against the AppState fields, merged into a new AppState and then
announced to subscribers with the set of keys whose value actually changed.

Because AppState is frozen and its collections are tuples or read-only
mappings, the object returned by ``get_state()`` is already an independent
point-in-time snapshot.
"""

import math
import shutil
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from git_watchtower.exceptions import InvalidUsageError
from git_watchtower.logging_config import get_logger
from git_watchtower.models.branch import Branch
from git_watchtower.models.pr import PrStatus
from git_watchtower.polling.engine import restore_selection

logger = get_logger(__name__)

DEFAULT_MAX_LOG_ENTRIES = 10
DEFAULT_MAX_SERVER_LOG_LINES = 500
DEFAULT_MAX_HISTORY = 20


class UIMode(Enum):
    """Which view the dashboard is showing."""
    NORMAL = "normal"
    SEARCH = "search"
    PREVIEW = "preview"
    HISTORY = "history"
    LOGS = "logs"
    INFO = "info"


@dataclass(frozen=True)
class FlashMessage:
    text: str
    kind: str = "info"  # info, success, warning, error, update


@dataclass(frozen=True)
class ActivityLogEntry:
    message: str
    kind: str
    timestamp: datetime


@dataclass(frozen=True)
class SwitchHistoryEntry:
    from_branch: str
    to_branch: str
    timestamp: datetime


@dataclass(frozen=True)
class DirtyOperation:
    """A switch or pull refused because of uncommitted changes."""
    kind: str  # switch, pull
    branch: str


@dataclass(frozen=True)
class ServerLogEntry:
    timestamp: str
    line: str
    is_error: bool = False


def _empty_mapping() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True)
class AppState:
    """Complete dashboard state. Never mutated; replaced on every write."""

    # Git state
    branches: Tuple[Branch, ...] = ()
    current_branch: Optional[str] = None
    is_detached_head: bool = False
    selected_index: int = 0
    selected_branch_name: Optional[str] = None

    # UI mode
    mode: UIMode = UIMode.NORMAL
    search_query: str = ""
    preview_data: Any = None
    log_scroll_offset: int = 0

    # Notifications and logs
    flash_message: Optional[FlashMessage] = None
    activity_log: Tuple[ActivityLogEntry, ...] = ()
    server_logs: Tuple[ServerLogEntry, ...] = ()
    switch_history: Tuple[SwitchHistoryEntry, ...] = ()

    # Terminal
    terminal_width: int = 80
    terminal_height: int = 24

    # Polling
    is_polling: bool = False
    polling_status: str = "idle"
    is_offline: bool = False
    last_fetch_duration: float = 0
    consecutive_network_failures: int = 0
    adaptive_poll_interval: int = 5000
    pr_status_by_name: Mapping[str, PrStatus] = field(default_factory=_empty_mapping)
    sparkline_by_name: Mapping[str, str] = field(default_factory=_empty_mapping)
    has_merge_conflict: bool = False
    pending_dirty_operation: Optional[DirtyOperation] = None

    # Settings, set once at startup
    max_log_entries: int = DEFAULT_MAX_LOG_ENTRIES
    max_server_log_lines: int = DEFAULT_MAX_SERVER_LOG_LINES
    visible_branch_count: int = 7
    project_name: str = ""


STATE_FIELDS: FrozenSet[str] = frozenset(f.name for f in fields(AppState))

Middleware = Callable[[AppState, Dict[str, Any]], Optional[Mapping[str, Any]]]
Listener = Callable[[AppState, AppState, FrozenSet[str]], None]
KeyListener = Callable[[AppState, AppState], None]


def _deep_freeze(value: Any) -> Any:
    if isinstance(value, list) or type(value) is tuple:
        return tuple(_deep_freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(value)
    if isinstance(value, Mapping):
        return MappingProxyType({k: _deep_freeze(v) for k, v in value.items()})
    return value


def _freeze(key: str, value: Any) -> Any:
    """Convert an update value into the immutable form AppState stores.

    Nested lists and dicts are frozen too, so nothing reachable from a
    snapshot can be changed in place.
    """
    if key == "mode":
        if isinstance(value, UIMode):
            return value
        try:
            return UIMode(value)
        except ValueError:
            raise InvalidUsageError(f"Unknown UI mode: {value!r}")
    return _deep_freeze(value)


def _normalize_updates(updates: Mapping[str, Any]) -> Dict[str, Any]:
    unknown = set(updates) - STATE_FIELDS
    if unknown:
        raise InvalidUsageError(f"Unknown state keys: {', '.join(sorted(unknown))}")
    if "branches" in updates and not isinstance(updates["branches"], (list, tuple)):
        raise InvalidUsageError(
            f"branches must be a list, got {type(updates['branches']).__name__}"
        )
    return {key: _freeze(key, value) for key, value in updates.items()}


def get_initial_state(**overrides) -> AppState:
    """Return a fresh default state, optionally with some fields overridden."""
    size = shutil.get_terminal_size((80, 24))
    defaults = {"terminal_width": size.columns, "terminal_height": size.lines}
    defaults.update(overrides)
    return AppState(**_normalize_updates(defaults))


class Store:
    """State container with middleware, subscriptions and convenience mutators."""

    def __init__(self, initial_state: Optional[Mapping[str, Any]] = None):
        self._state = get_initial_state(**dict(initial_state or {}))
        self._listeners: List[Listener] = []
        self._middlewares: List[Middleware] = []

    # ------------------------------------------------------------------
    # Core API
    # ------------------------------------------------------------------

    def get_state(self) -> AppState:
        """Return the current state snapshot."""
        return self._state

    def get(self, key: str) -> Any:
        """Return a single state value."""
        if key not in STATE_FIELDS:
            raise InvalidUsageError(f"Unknown state key: {key}")
        return getattr(self._state, key)

    def set_state(self, updates: Optional[Mapping[str, Any]] = None, **changes) -> AppState:
        """Apply a partial update and notify subscribers.

        The update runs through every middleware in registration order. Each
        middleware sees the untouched previous state and the update built so
        far, and returns a replacement update (or None to keep it). If a
        middleware raises, nothing is merged and the error propagates.

        Returns:
            The new state.
        """
        pending: Dict[str, Any] = dict(updates or {})
        pending.update(changes)

        previous = self._state
        for middleware in self._middlewares:
            result = middleware(previous, dict(pending))
            if result is not None:
                pending = dict(result)

        normalized = _normalize_updates(pending)
        new_state = replace(previous, **normalized)
        changed = frozenset(
            key for key in normalized if getattr(previous, key) != getattr(new_state, key)
        )

        self._state = new_state
        self._notify(previous, new_state, changed)
        return new_state

    def use(self, middleware: Middleware) -> None:
        """Append a middleware to the update chain."""
        self._middlewares.append(middleware)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(previous, new, changed_keys)`` after every write.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def subscribe_to_keys(self, keys: Iterable[str], listener: KeyListener) -> Callable[[], None]:
        """Call ``listener(previous, new)`` only when one of ``keys`` changed."""
        watched = frozenset(keys)
        unknown = watched - STATE_FIELDS
        if unknown:
            raise InvalidUsageError(f"Unknown state keys: {', '.join(sorted(unknown))}")

        def filtered(previous: AppState, new: AppState, changed: FrozenSet[str]) -> None:
            if changed & watched:
                listener(previous, new)

        return self.subscribe(filtered)

    def _notify(self, previous: AppState, new: AppState, changed: FrozenSet[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(previous, new, changed)
            except Exception as e:
                logger.error(f"Store listener error: {e}", exc_info=True)

    def reset(self, **overrides) -> AppState:
        """Restore the default state (plus overrides) and notify once."""
        previous = self._state
        new_state = get_initial_state(**overrides)
        changed = frozenset(
            key for key in STATE_FIELDS if getattr(previous, key) != getattr(new_state, key)
        )
        self._state = new_state
        self._notify(previous, new_state, changed)
        return new_state

    # ------------------------------------------------------------------
    # Convenience mutators
    # ------------------------------------------------------------------

    def set_mode(self, mode) -> None:
        """Switch UI mode, clearing state owned by the mode being left."""
        new_mode = _freeze("mode", mode)
        previous_mode = self._state.mode
        updates: Dict[str, Any] = {"mode": new_mode}

        if previous_mode is UIMode.SEARCH and new_mode is not UIMode.SEARCH:
            updates["search_query"] = ""
        if previous_mode is UIMode.PREVIEW and new_mode is not UIMode.PREVIEW:
            updates["preview_data"] = None
        if previous_mode is UIMode.LOGS and new_mode is not UIMode.LOGS:
            updates["log_scroll_offset"] = 0

        self.set_state(updates)

    def flash(self, text: str, kind: str = "info") -> None:
        self.set_state(flash_message=FlashMessage(text, kind))

    def clear_flash(self) -> None:
        self.set_state(flash_message=None)

    def add_log(self, message: str, kind: str = "info", max_entries: Optional[int] = None) -> None:
        """Append to the activity log, dropping the oldest entries past the limit."""
        limit = max_entries or self._state.max_log_entries
        entry = ActivityLogEntry(message, kind, datetime.now())
        self.set_state(activity_log=(self._state.activity_log + (entry,))[-limit:])

    def add_to_history(
        self, from_branch: str, to_branch: str, max_entries: int = DEFAULT_MAX_HISTORY
    ) -> None:
        entry = SwitchHistoryEntry(from_branch, to_branch, datetime.now())
        self.set_state(switch_history=(self._state.switch_history + (entry,))[-max_entries:])

    def get_last_switch(self) -> Optional[SwitchHistoryEntry]:
        history = self._state.switch_history
        return history[-1] if history else None

    def pop_history(self) -> Optional[SwitchHistoryEntry]:
        """Remove and return the most recent switch (used by undo)."""
        history = self._state.switch_history
        if not history:
            return None
        self.set_state(switch_history=history[:-1])
        return history[-1]

    def add_server_log(self, line: str, is_error: bool = False, max_lines: Optional[int] = None) -> None:
        limit = max_lines or self._state.max_server_log_lines
        entry = ServerLogEntry(datetime.now().strftime("%H:%M:%S"), line, is_error)
        self.set_state(server_logs=(self._state.server_logs + (entry,))[-limit:])

    def clear_server_logs(self) -> None:
        self.set_state(server_logs=(), log_scroll_offset=0)

    def set_branches(self, branches) -> None:
        """Replace the branch list, keeping the cursor on the same branch."""
        if not isinstance(branches, (list, tuple)):
            raise InvalidUsageError(f"branches must be a list, got {type(branches).__name__}")

        selection = restore_selection(
            branches, self._state.selected_branch_name, self._state.selected_index
        )
        self.set_state(
            branches=tuple(branches),
            selected_index=selection.selected_index,
            selected_branch_name=selection.selected_branch_name,
        )

    def set_selected_index(self, index) -> None:
        """Select a row, clamped to the branch list."""
        if isinstance(index, bool) or not isinstance(index, (int, float)) or math.isnan(index):
            raise InvalidUsageError(f"selected index must be a number, got {index!r}")

        branches = self._state.branches
        if not branches:
            self.set_state(selected_index=0, selected_branch_name=None)
            return

        clamped = max(0, min(int(math.floor(index)), len(branches) - 1))
        self.set_state(selected_index=clamped, selected_branch_name=branches[clamped].name)

    def move_selection(self, delta: int) -> None:
        self.set_selected_index(self._state.selected_index + delta)

    def get_selected_branch(self) -> Optional[Branch]:
        branches, index = self._state.branches, self._state.selected_index
        if 0 <= index < len(branches):
            return branches[index]
        return None

    def get_filtered_branches(self) -> List[Branch]:
        """Branches matching the search query while in search mode, otherwise all."""
        state = self._state
        if state.mode is not UIMode.SEARCH or not state.search_query:
            return list(state.branches)
        query = state.search_query.lower()
        return [branch for branch in state.branches if query in branch.name.lower()]

    def set_terminal_size(self, width: int, height: int) -> None:
        self.set_state(terminal_width=width, terminal_height=height)


def create_store(initial_state: Optional[Mapping[str, Any]] = None, **overrides) -> Store:
    """Create a Store with optional initial values."""
    merged = dict(initial_state or {})
    merged.update(overrides)
    return Store(merged)
