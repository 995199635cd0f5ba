"""Branch model"""
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


@dataclass(frozen=True)
class Branch:
    """A branch as observed in one fetch.

    Records are immutable. Poll cycles produce stamped copies instead of
    flipping flags on records another reader may hold.
    """
    name: str
    commit: str = ""
    date: datetime = EPOCH
    subject: str = ""
    is_local: bool = True
    has_remote: bool = False
    has_updates: bool = False
    remote_commit: Optional[str] = None

    # Transient flags set by the polling engine
    is_new: bool = False
    new_at: Optional[float] = None
    is_deleted: bool = False
    deleted_at: Optional[float] = None
    just_updated: bool = False

    def mark_new(self, now: float) -> "Branch":
        return replace(self, is_new=True, new_at=now)

    def mark_deleted(self, now: float) -> "Branch":
        return replace(self, is_deleted=True, deleted_at=now)

    def mark_updated(self) -> "Branch":
        return replace(self, just_updated=True)
