"""Normalization of code-review platform payloads into PrStatus records.

GitHub (``gh pr list --json``), GitLab (``glab mr list``) and PyGithub
``PullRequest`` objects all describe the same thing with different field
names and state vocabularies. Everything here maps them onto PrStatus so the
polling engine only ever sees one shape. The remote URL decides which
platform is asked in the first place.
"""

import re
from typing import Any, Dict, Iterable, List, Optional

from git_watchtower.logging_config import get_logger
from git_watchtower.models.pr import PrState, PrStatus

logger = get_logger(__name__)

# Long-lived integration branches never get the "merged" treatment
BASE_BRANCH_RE = re.compile(r"^(main|master|develop|development|staging|production|trunk|release)$")

PLATFORM_GITHUB = "github"
PLATFORM_GITLAB = "gitlab"
PLATFORM_BITBUCKET = "bitbucket"
PLATFORM_AZURE = "azure"

# git@host:path, https://[user@]host[:port]/path and ssh://user@host[:port]/path
_SCP_REMOTE_RE = re.compile(r"^[\w.-]+@([^:/]+):(.+)$")
_URL_REMOTE_RE = re.compile(r"^(?:https?|ssh|git)://(?:[^@/]+@)?([^/:]+)(?::\d+)?/(.+)$")


def remote_host(remote_url: Optional[str]) -> Optional[str]:
    """Host name of a git remote URL, lowercased, or None for local paths."""
    url = (remote_url or "").strip()
    match = _URL_REMOTE_RE.match(url) or _SCP_REMOTE_RE.match(url)
    return match.group(1).lower() if match else None


def detect_platform(remote_url: Optional[str]) -> Optional[str]:
    """Guess the hosting platform from a remote URL.

    Unrecognized hosts are assumed to be self-hosted GitHub Enterprise.
    Returns None when the remote is not a network URL at all.
    """
    host = remote_host(remote_url)
    if host is None:
        return None
    if "github" in host:
        return PLATFORM_GITHUB
    if "gitlab" in host:
        return PLATFORM_GITLAB
    if "bitbucket" in host:
        return PLATFORM_BITBUCKET
    if host.endswith("dev.azure.com") or host.endswith("visualstudio.com"):
        return PLATFORM_AZURE
    return PLATFORM_GITHUB


def is_base_branch(name: Optional[str]) -> bool:
    """Check if a branch name is a base/default branch (exact match)."""
    return bool(name) and BASE_BRANCH_RE.fullmatch(name) is not None


def _as_number(value: Any) -> int:
    # Drafts and malformed payloads can carry null or string numbers
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def normalize_state(raw: Any, merged: bool = False) -> PrState:
    """Map a platform-specific state onto PrState.

    Accepts GitHub GraphQL states (OPEN/MERGED/CLOSED), GitLab states
    (opened/merged/closed/locked) and REST states (open/closed plus a
    separate merged flag).
    """
    if merged:
        return PrState.MERGED
    value = str(raw or "").strip().upper()
    if value == "MERGED":
        return PrState.MERGED
    if value in ("OPEN", "OPENED"):
        return PrState.OPEN
    return PrState.CLOSED


def parse_github_pr(prs: Optional[List[Dict[str, Any]]]) -> Optional[PrStatus]:
    """Parse the first PR of a ``gh pr list --json`` response."""
    if not prs:
        return None
    pr = prs[0]
    checks = pr.get("statusCheckRollup") or []
    conclusions = [check.get("conclusion") for check in checks]
    return PrStatus(
        number=_as_number(pr.get("number")),
        title=pr.get("title") or "",
        state=normalize_state(pr.get("state")),
        approved=pr.get("reviewDecision") == "APPROVED",
        checks_pass=bool(checks) and all(c == "SUCCESS" for c in conclusions),
        checks_fail=any(c == "FAILURE" for c in conclusions),
        checks_count=len(checks),
    )


def parse_gitlab_mr(mrs: Optional[List[Dict[str, Any]]]) -> Optional[PrStatus]:
    """Parse the first MR of a ``glab mr list`` response.

    GitLab's list output carries no approval or pipeline data.
    """
    if not mrs:
        return None
    mr = mrs[0]
    return PrStatus(
        number=_as_number(mr.get("iid")),
        title=mr.get("title") or "",
        state=normalize_state(mr.get("state")),
    )


def _keep_highest(result: Dict[str, PrStatus], branch: Optional[str], status: PrStatus) -> None:
    if not branch:
        return
    existing = result.get(branch)
    if existing is None or status.number > existing.number:
        result[branch] = status


def parse_github_pr_list(prs: Any) -> Dict[str, PrStatus]:
    """Map head branch -> PrStatus for a bulk ``gh pr list`` response.

    When several PRs come from one branch the highest number wins.
    """
    result: Dict[str, PrStatus] = {}
    if not isinstance(prs, list):
        return result
    for pr in prs:
        if not isinstance(pr, dict):
            continue
        status = PrStatus(
            number=_as_number(pr.get("number")),
            title=pr.get("title") or "",
            state=normalize_state(pr.get("state")),
        )
        _keep_highest(result, pr.get("headRefName"), status)
    return result


def parse_gitlab_mr_list(mrs: Any) -> Dict[str, PrStatus]:
    """Map source branch -> PrStatus for a bulk ``glab mr list`` response."""
    result: Dict[str, PrStatus] = {}
    if not isinstance(mrs, list):
        return result
    for mr in mrs:
        if not isinstance(mr, dict):
            continue
        status = PrStatus(
            number=_as_number(mr.get("iid")),
            title=mr.get("title") or "",
            state=normalize_state(mr.get("state")),
        )
        _keep_highest(result, mr.get("source_branch"), status)
    return result


def pr_status_from_pull(pull) -> PrStatus:
    """Build a PrStatus from a PyGithub PullRequest.

    Uses ``merged_at`` rather than ``merged``: the latter is not part of the
    list payload and would cost one API call per PR.
    """
    return PrStatus(
        number=pull.number,
        title=pull.title or "",
        state=normalize_state(pull.state, merged=pull.merged_at is not None),
    )


def parse_pull_list(pulls: Iterable) -> Dict[str, PrStatus]:
    """Map head branch -> PrStatus for PyGithub pulls, highest number wins."""
    result: Dict[str, PrStatus] = {}
    for pull in pulls:
        try:
            branch = pull.head.ref
            status = pr_status_from_pull(pull)
        except AttributeError as e:
            logger.debug(f"[PR] Skipping malformed pull request payload: {e}")
            continue
        _keep_highest(result, branch, status)
    return result
