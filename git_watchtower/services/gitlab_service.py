"""GitLab merge request status through the ``glab`` CLI"""

import json
import shutil
import subprocess
from typing import Dict, Optional, Union, TYPE_CHECKING

from git_watchtower.exceptions import GitLabCLIError
from git_watchtower.logging_config import get_logger
from git_watchtower.models.pr import PrStatus
from git_watchtower.services.pr_status import PLATFORM_GITLAB, detect_platform, parse_gitlab_mr_list

if TYPE_CHECKING:
    from git_watchtower.config import Config

logger = get_logger(__name__)


class GitLabService:
    """Reads merge requests with the user's own ``glab`` login.

    ``glab`` resolves the project from the repository's remotes, so every
    command runs with the repository as its working directory.
    """

    def __init__(self, repo_path: str, config: Union["Config", dict]):
        self.repo_path = repo_path
        self.config = config
        self.max_prs = config.get("max_prs_to_fetch", 100)
        self.timeout = config.get("git_timeout", 30.0)
        self.glab_path: Optional[str] = None
        self._authenticated = False

    @property
    def enabled(self) -> bool:
        """True once setup_gitlab found an authenticated glab."""
        return self.glab_path is not None and self._authenticated

    def _run(self, operation: str, *args: str) -> subprocess.CompletedProcess:
        assert self.glab_path is not None
        try:
            return subprocess.run(
                [self.glab_path, *args],
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise GitLabCLIError(operation, f"timed out after {self.timeout:g}s") from e
        except OSError as e:
            raise GitLabCLIError(operation, str(e)) from e

    def setup_gitlab(self, remote_url: Optional[str]) -> bool:
        """Check that ``remote_url`` is on GitLab and glab is logged in.

        Returns:
            False when the remote is elsewhere, glab is missing or not authenticated.

        Raises:
            GitLabCLIError: if glab could not be run at all
        """
        if detect_platform(remote_url) != PLATFORM_GITLAB:
            logger.debug(f"[GitLab] Remote is not a GitLab URL: {remote_url}")
            return False

        self.glab_path = shutil.which("glab")
        if self.glab_path is None:
            logger.info("[GitLab] glab CLI not found; MR status disabled")
            return False

        result = self._run("auth status", "auth", "status")
        if result.returncode != 0:
            logger.info("[GitLab] glab is not authenticated; MR status disabled")
            return False

        self._authenticated = True
        logger.debug(f"[GitLab] GitLab integration enabled for: {remote_url}")
        return True

    def get_bulk_pr_status(self) -> Dict[str, PrStatus]:
        """Map source branch -> PrStatus for recent merge requests in any state."""
        if not self.enabled:
            return {}

        result = self._run(
            "mr list",
            "mr", "list", "--all", "--output", "json", "--per-page", str(self.max_prs),
        )
        if result.returncode != 0:
            message = (result.stderr or "").strip() or f"exit status {result.returncode}"
            raise GitLabCLIError("mr list", message)

        try:
            payload = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as e:
            raise GitLabCLIError("mr list", f"invalid JSON output: {e}") from e

        statuses = parse_gitlab_mr_list(payload)
        logger.debug(f"[GitLab] Fetched MR status for {len(statuses)} branches")
        return statuses

    def close(self) -> None:
        self._authenticated = False
