"""Polling engine: pure branch change detection, ordering and pacing.

Called once per poll cycle by the driving loop. Nothing here blocks, awaits
or keeps state between calls. Branch records are never modified; every
function returns stamped copies (see Branch.mark_*).

Intervals and durations are in milliseconds.
"""

import time
from dataclasses import dataclass, field, replace
from typing import Collection, Dict, Iterable, List, Mapping, Optional, Sequence

from git_watchtower.models.branch import Branch
from git_watchtower.models.pr import PrState, PrStatus
from git_watchtower.services.pr_status import is_base_branch

MAX_POLL_INTERVAL = 60000
VERY_SLOW_FETCH = 30000
SLOW_FETCH = 15000
FAST_FETCH = 5000

WARNING_VERY_SLOW = "very_slow"
WARNING_SLOW = "slow"
WARNING_RESTORED = "restored"


@dataclass(frozen=True)
class AdaptiveInterval:
    """Next poll interval and why it was chosen."""
    interval: int
    warning: Optional[str] = None


@dataclass(frozen=True)
class Selection:
    """Cursor position after the branch list changed."""
    selected_index: int
    selected_branch_name: Optional[str]


@dataclass
class PollCycleResult:
    """Everything one poll cycle computed. Never persisted."""
    branches: List[Branch] = field(default_factory=list)
    new_branches: List[Branch] = field(default_factory=list)
    deleted_branches: List[Branch] = field(default_factory=list)
    updated_branches: List[Branch] = field(default_factory=list)
    selected_index: int = 0
    selected_branch_name: Optional[str] = None
    interval: Optional[int] = None
    warning: Optional[str] = None

    @property
    def has_changes(self) -> bool:
        return bool(self.new_branches or self.deleted_branches or self.updated_branches)


def detect_new_branches(
    fetched: Iterable[Branch], known_names: Collection[str], now: Optional[float] = None
) -> List[Branch]:
    """Return stamped copies of fetched branches whose name is not known yet."""
    now = time.time() if now is None else now
    return [branch.mark_new(now) for branch in fetched if branch.name not in known_names]


def detect_deleted_branches(
    known_names: Collection[str],
    fetched_names: Collection[str],
    existing: Iterable[Branch],
    now: Optional[float] = None,
) -> List[Branch]:
    """Return stamped copies of known branches that vanished from the fetch.

    Branches already marked deleted are skipped, so repeating the call
    against the committed result reports nothing new.
    """
    now = time.time() if now is None else now
    deleted = []
    for branch in existing:
        if branch.name not in known_names or branch.name in fetched_names:
            continue
        if branch.is_deleted:
            continue
        deleted.append(branch.mark_deleted(now))
    return deleted


def detect_updated_branches(
    branches: Iterable[Branch],
    previous_commit_by_name: Mapping[str, str],
    current_branch_name: Optional[str],
) -> List[Branch]:
    """Return copies flagged ``just_updated`` for branches whose commit moved.

    Deleted branches and the checked-out branch are never flagged; the user
    does not need to be told about their own commits.
    """
    updated = []
    for branch in branches:
        if branch.is_deleted or branch.name == current_branch_name:
            continue
        previous = previous_commit_by_name.get(branch.name)
        if previous and previous != branch.commit:
            updated.append(branch.mark_updated())
    return updated


def apply_changes(branches: Iterable[Branch], changed: Iterable[Branch]) -> List[Branch]:
    """Replace records in ``branches`` with same-named records from ``changed``."""
    by_name = {branch.name: branch for branch in changed}
    return [by_name.get(branch.name, branch) for branch in branches]


def _is_merged(branch: Branch, pr_status_by_name: Mapping[str, PrStatus]) -> bool:
    if is_base_branch(branch.name):
        return False
    status = pr_status_by_name.get(branch.name)
    return status is not None and status.state is PrState.MERGED


def sort_branches(
    branches: Iterable[Branch], pr_status_by_name: Optional[Mapping[str, PrStatus]] = None
) -> List[Branch]:
    """Order branches for display.

    Deleted branches go last, merged ones just above them, newly seen
    branches first among the rest, then most recent commit first. Base
    branches are never treated as merged. The sort is stable.
    """
    pr_status_by_name = pr_status_by_name or {}

    def sort_key(branch: Branch):
        if branch.is_deleted:
            group = 2
        elif _is_merged(branch, pr_status_by_name):
            group = 1
        else:
            group = 0
        return (group, 0 if branch.is_new else 1, -branch.date.timestamp())

    return sorted(branches, key=sort_key)


def calculate_adaptive_interval(
    duration: float, current_interval: int, base_interval: int
) -> AdaptiveInterval:
    """Pick the next poll interval from the last fetch duration.

    Very slow fetches double the interval, slow ones hold it. Returning to
    the base needs a fast fetch while above the base, so a single sample
    cannot make the interval flap.
    """
    upper = max(MAX_POLL_INTERVAL, base_interval)

    if duration > VERY_SLOW_FETCH:
        interval, warning = min(current_interval * 2, MAX_POLL_INTERVAL), WARNING_VERY_SLOW
    elif duration > SLOW_FETCH:
        interval, warning = current_interval, WARNING_SLOW
    elif duration < FAST_FETCH and current_interval > base_interval:
        interval, warning = base_interval, WARNING_RESTORED
    else:
        interval, warning = current_interval, None

    return AdaptiveInterval(interval=max(base_interval, min(interval, upper)), warning=warning)


def restore_selection(
    branches: Sequence[Branch], previous_name: Optional[str], previous_index: int
) -> Selection:
    """Keep the cursor on the same branch after the list was rebuilt.

    If the previously selected branch is gone, the cursor stays at the old
    slot (clamped), which may now hold an unrelated branch.
    """
    if not branches:
        return Selection(0, None)

    last = len(branches) - 1
    if previous_name:
        for index, branch in enumerate(branches):
            if branch.name == previous_name:
                return Selection(index, previous_name)

    index = max(0, min(previous_index, last))
    return Selection(index, branches[index].name)


def reconcile_branches(
    existing: Sequence[Branch],
    fetched: Sequence[Branch],
    pr_status_by_name: Optional[Mapping[str, PrStatus]] = None,
    current_branch: Optional[str] = None,
    previous_name: Optional[str] = None,
    previous_index: int = 0,
    detect_new: bool = True,
    now: Optional[float] = None,
) -> PollCycleResult:
    """Run one full cycle of detection, ordering and selection restore.

    Args:
        existing: Branches currently committed to the store
        fetched: Raw branches from this cycle's fetch
        pr_status_by_name: PR/CI status per branch name
        current_branch: Checked-out branch, never flagged as updated
        previous_name: Selected branch name before the cycle
        previous_index: Selected index before the cycle
        detect_new: False on the first cycle, when every branch is unseen
        now: Timestamp used for new/deleted stamps

    Returns:
        PollCycleResult with the ordered branch list and detected changes.
        The interval fields are left for the caller.
    """
    now = time.time() if now is None else now
    existing_by_name = {branch.name: branch for branch in existing}
    known_names = {branch.name for branch in existing if not branch.is_deleted}
    fetched_names = {branch.name for branch in fetched}

    # Keep the "new" highlight until the branch is seen as something else
    current: List[Branch] = []
    for branch in fetched:
        previous = existing_by_name.get(branch.name)
        if previous is not None and previous.is_new and not previous.is_deleted:
            branch = replace(branch, is_new=True, new_at=previous.new_at)
        current.append(branch)

    new_branches = detect_new_branches(fetched, known_names, now) if detect_new else []
    current = apply_changes(current, new_branches)

    deleted_branches = detect_deleted_branches(known_names, fetched_names, existing, now)
    deleted_by_name = {branch.name: branch for branch in deleted_branches}
    for branch in existing:
        if branch.name in fetched_names:
            continue
        current.append(deleted_by_name.get(branch.name, branch))

    previous_commits: Dict[str, str] = {
        branch.name: branch.commit for branch in existing if not branch.is_deleted
    }
    updated_branches = detect_updated_branches(current, previous_commits, current_branch)
    current = apply_changes(current, updated_branches)

    ordered = sort_branches(current, pr_status_by_name)
    selection = restore_selection(ordered, previous_name, previous_index)

    return PollCycleResult(
        branches=ordered,
        new_branches=new_branches,
        deleted_branches=deleted_branches,
        updated_branches=updated_branches,
        selected_index=selection.selected_index,
        selected_branch_name=selection.selected_branch_name,
    )
