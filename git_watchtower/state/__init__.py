"""Application state store"""

from git_watchtower.state.store import (
    ActivityLogEntry,
    AppState,
    DirtyOperation,
    FlashMessage,
    ServerLogEntry,
    Store,
    SwitchHistoryEntry,
    UIMode,
    create_store,
    get_initial_state,
)

__all__ = [
    "ActivityLogEntry",
    "AppState",
    "DirtyOperation",
    "FlashMessage",
    "ServerLogEntry",
    "Store",
    "SwitchHistoryEntry",
    "UIMode",
    "create_store",
    "get_initial_state",
]
