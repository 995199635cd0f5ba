"""GitHub API integration service"""

import os
from typing import Dict, Optional, Union, TYPE_CHECKING
from urllib.parse import urlparse

from github import Auth, Github

from git_watchtower.exceptions import GitHubAPIError
from git_watchtower.logging_config import get_logger
from git_watchtower.models.pr import PrStatus
from git_watchtower.services.pr_status import parse_pull_list

if TYPE_CHECKING:
    from github.Repository import Repository
    from git_watchtower.config import Config

logger = get_logger(__name__)


def parse_github_remote(remote_url: str) -> Optional[str]:
    """Extract ``org/repo`` from an SSH or HTTPS GitHub remote URL."""
    if not remote_url or "github.com" not in remote_url:
        return None

    if remote_url.startswith("git@"):
        # SSH URL format (git@github.com:org/repo.git)
        path = remote_url.split("github.com:", 1)[-1]
    else:
        # HTTPS URL format (https://github.com/org/repo.git)
        path = urlparse(remote_url).path
    path = path.strip("/")

    if path.endswith(".git"):
        path = path[:-4]
    return path or None


class GitHubService:
    def __init__(self, repo_path: str, config: Union["Config", dict]):
        self.repo_path = repo_path
        self.config = config
        self.max_prs = config.get("max_prs_to_fetch", 100)
        self.github_token = config.get("github_token") or os.environ.get("GITHUB_TOKEN")
        self.github_repo: Optional[str] = None
        self.github: Optional[Github] = None
        self.gh_repo: Optional["Repository"] = None

    @property
    def enabled(self) -> bool:
        """True once setup_github_api connected to a repository."""
        return self.gh_repo is not None

    def setup_github_api(self, remote_url: Optional[str]) -> bool:
        """Connect to the GitHub repository behind ``remote_url``.

        Returns:
            False when the remote is not on GitHub or no token is available.

        Raises:
            GitHubAPIError: if the API rejected the token or the repository lookup
        """
        path = parse_github_remote(remote_url or "")
        if path is None:
            logger.debug(f"[GitHub] Remote is not a GitHub URL: {remote_url}")
            return False
        if not self.github_token:
            logger.info("[GitHub] No token configured; PR status disabled")
            return False

        try:
            self.github_repo = path
            self.github = Github(auth=Auth.Token(self.github_token))
            self.gh_repo = self.github.get_repo(self.github_repo)
            logger.debug(f"[GitHub] GitHub integration enabled for: {path}")
            return True
        except Exception as e:
            logger.error(f"[GitHub] Failed to setup GitHub API: {e}")
            self.gh_repo = None
            raise GitHubAPIError("setup", str(e)) from e

    def get_bulk_pr_status(self) -> Dict[str, PrStatus]:
        """Map head branch -> PrStatus for the most recently updated pulls.

        One paginated listing covers every branch, capped at ``max_prs``.
        """
        if not self.enabled:
            return {}

        try:
            assert self.gh_repo is not None
            pulls = self.gh_repo.get_pulls(state="all", sort="updated", direction="desc")
            result = parse_pull_list(pulls[: self.max_prs])
        except Exception as e:
            logger.debug(f"[GitHub] Error getting bulk PR status: {e}")
            raise GitHubAPIError("get_bulk_pr_status", str(e)) from e

        logger.debug(f"[GitHub] Fetched PR status for {len(result)} branches")
        return result

    def close(self) -> None:
        """Close the GitHub API connection to clean up resources."""
        if self.github:
            try:
                self.github.close()
                logger.debug("[GitHub] Closed GitHub API connection")
            except Exception as e:
                logger.debug(f"[GitHub] Error closing GitHub API connection: {e}")
            self.github = None
            self.gh_repo = None
