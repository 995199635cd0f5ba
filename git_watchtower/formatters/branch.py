"""Branch row formatting utilities."""

from typing import Optional

from git_watchtower.constants import (
    SYMBOL_APPROVED,
    SYMBOL_CHECKS_FAIL,
    SYMBOL_CHECKS_PASS,
    SYMBOL_CHECKS_PENDING,
    SYMBOL_CURRENT_BRANCH,
    SYMBOL_DELETED,
    SYMBOL_HAS_REMOTE,
    SYMBOL_HAS_UPDATES,
    SYMBOL_NEW,
    SYMBOL_NO_REMOTE,
    SYMBOL_REMOTE_ONLY,
    BranchStyleType,
)
from git_watchtower.models.branch import Branch
from git_watchtower.models.pr import PrState, PrStatus
from git_watchtower.services.pr_status import is_base_branch


def format_branch_name(branch: Branch, is_current: bool = False) -> str:
    """
    Format branch name with new/deleted markers and current branch indicator.

    Args:
        branch: Branch record
        is_current: Whether this is the checked-out branch

    Returns:
        Formatted branch name, e.g. "✦ feature/login" or "main *"
    """
    prefix = ""
    if branch.is_deleted:
        prefix = SYMBOL_DELETED
    elif branch.is_new:
        prefix = SYMBOL_NEW
    return prefix + branch.name + (SYMBOL_CURRENT_BRANCH if is_current else "")


def format_remote_status(branch: Branch) -> str:
    """
    Format where a branch lives as a symbol.

    ✓ = local with remote     ✗ = local only
    ☁ = remote only           ↓ = remote has new commits
    """
    if not branch.is_local:
        return SYMBOL_REMOTE_ONLY
    if branch.has_updates:
        return SYMBOL_HAS_UPDATES
    return SYMBOL_HAS_REMOTE if branch.has_remote else SYMBOL_NO_REMOTE


def format_pr_status(status: Optional[PrStatus]) -> str:
    """
    Format a PR badge such as "#42 open ✓ 👍" or "#7 merged".

    Check symbols are only shown for open PRs that report checks.
    """
    if status is None:
        return ""

    parts = [f"#{status.number}", status.state.value.lower()]
    if status.state is PrState.OPEN and status.checks_count:
        if status.checks_fail:
            parts.append(SYMBOL_CHECKS_FAIL)
        elif status.checks_pass:
            parts.append(SYMBOL_CHECKS_PASS)
        else:
            parts.append(SYMBOL_CHECKS_PENDING)
    if status.approved and status.state is PrState.OPEN:
        parts.append(SYMBOL_APPROVED)
    return " ".join(parts)


def get_branch_style_type(
    branch: Branch, current_branch: Optional[str] = None, pr_status: Optional[PrStatus] = None
) -> str:
    """Pick the row style for a branch. Deleted wins over everything else."""
    if branch.is_deleted:
        return BranchStyleType.DELETED
    if branch.name == current_branch:
        return BranchStyleType.CURRENT
    if pr_status is not None and pr_status.is_merged and not is_base_branch(branch.name):
        return BranchStyleType.MERGED
    if branch.just_updated or branch.has_updates:
        return BranchStyleType.UPDATED
    if branch.is_new:
        return BranchStyleType.NEW
    return BranchStyleType.ACTIVE
