"""Git operations service"""
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple, Union, TYPE_CHECKING

import git

from git_watchtower.constants import SPARKLINE_DAYS
from git_watchtower.exceptions import GitCommandFailure, InvalidUsageError, NetworkError
from git_watchtower.logging_config import get_logger
from git_watchtower.models.branch import Branch

if TYPE_CHECKING:
    from git_watchtower.config import Config

logger = get_logger(__name__)

# Conservative subset of what git accepts; anything else never reaches a command line
VALID_BRANCH_PATTERN = re.compile(r"^[a-zA-Z0-9_\-./]+$")
MAX_BRANCH_NAME_LENGTH = 255

REF_FORMAT = "%(refname:short)|%(committerdate:raw)|%(objectname:short)|%(subject)"


def is_valid_branch_name(name) -> bool:
    """Check a branch name before it is passed to git."""
    if not name or not isinstance(name, str):
        return False
    if len(name) > MAX_BRANCH_NAME_LENGTH:
        return False
    if not VALID_BRANCH_PATTERN.match(name):
        return False
    if ".." in name or name.startswith("-"):
        return False
    if name.startswith("/") or name.endswith("/"):
        return False
    return True


def sanitize_branch_name(name) -> str:
    """Return ``name`` unchanged if it is safe, otherwise raise InvalidUsageError."""
    if not is_valid_branch_name(name):
        raise InvalidUsageError(f"Invalid branch name: {name!r}")
    return name


def _parse_ref_line(line: str) -> Optional[Tuple[str, datetime, str, str]]:
    parts = line.split("|", 3)
    if len(parts) < 3:
        return None
    name, raw_date, commit = parts[0], parts[1], parts[2]
    subject = parts[3] if len(parts) > 3 else ""
    try:
        # raw format is "<unix seconds> <tz offset>"
        date = datetime.fromtimestamp(int(raw_date.split()[0]), tz=timezone.utc)
    except (ValueError, IndexError):
        return None
    return name, date, commit, subject


class GitService:
    """Service for the git operations the dashboard needs."""

    def __init__(self, repo_path: str, config: Union["Config", dict]):
        """Initialize the service.

        Args:
            repo_path: Path to the git repository (string path, not repo object)
            config: Configuration dictionary or Config object
        """
        self.repo_path = repo_path
        self.config = config
        self.remote_name = config.get("remote_name", "origin")
        self.fetch_timeout = config.get("fetch_timeout", 60.0)
        self.debug_mode = config.get("debug", False)
        logger.debug("Git service initialized")

    def _get_repo(self):
        """Get a fresh git.Repo instance.

        Each call opens its own instance so calls made from worker threads
        never share one.
        """
        return git.Repo(self.repo_path)

    def _to_failure(
        self, operation: str, error: git.exc.GitCommandError, branch: Optional[str] = None
    ) -> GitCommandFailure:
        """Translate a GitPython error, keeping stderr for classification."""
        command = error.command if hasattr(error, "command") else "git"
        if isinstance(command, (list, tuple)):
            command = " ".join(str(part) for part in command)
        stderr = str(error.stderr if hasattr(error, "stderr") else error).strip()
        # Merge conflicts are reported on stdout
        stdout = str(error.stdout if hasattr(error, "stdout") else "").strip()
        if stdout:
            stderr = f"{stderr}\n{stdout}".strip()
        status = error.status if hasattr(error, "status") else "unknown"
        message = f"'{command}' failed (exit {status})"

        failure = GitCommandFailure(operation, message, stderr, branch=branch)
        if failure.is_network_error():
            return NetworkError(operation, message, stderr)
        return failure

    def get_remote_url(self) -> Optional[str]:
        """URL of the configured remote, or None when it does not exist."""
        try:
            return self._get_repo().remote(self.remote_name).url
        except ValueError:
            return None

    def get_current_branch(self) -> Tuple[Optional[str], bool]:
        """Return ``(name, is_detached)`` for HEAD.

        A detached HEAD is reported as ``HEAD@<short sha>``. Returns
        ``(None, False)`` when HEAD cannot be resolved (e.g. an empty repo).
        """
        try:
            repo = self._get_repo()
            if repo.head.is_detached:
                short_sha = repo.git.rev_parse("--short", "HEAD")
                return f"HEAD@{short_sha}", True
            return repo.active_branch.name, False
        except (git.exc.GitCommandError, TypeError, ValueError) as e:
            logger.debug(f"Could not resolve current branch: {e}")
            return None, False

    def has_uncommitted_changes(self) -> bool:
        return self._get_repo().is_dirty(untracked_files=False)

    def fetch(self, prune: bool = True) -> bool:
        """Fetch from the configured remote.

        Returns:
            False if the repository has no such remote, True after a fetch.

        Raises:
            NetworkError: if the remote could not be reached
            GitCommandFailure: for any other git failure
        """
        repo = self._get_repo()
        if self.remote_name not in [remote.name for remote in repo.remotes]:
            logger.debug(f"No remote named '{self.remote_name}', skipping fetch")
            return False

        args = [self.remote_name]
        if prune:
            args.append("--prune")
        try:
            repo.git.fetch(*args, kill_after_timeout=self.fetch_timeout)
        except git.exc.GitCommandError as e:
            raise self._to_failure("fetch", e) from e
        logger.debug(f"Fetched from {self.remote_name}")
        return True

    def get_all_branches(self, fetch: bool = True) -> List[Branch]:
        """List local and remote-tracking branches, most recent first.

        Local and remote refs of the same name are merged into one Branch.
        When the remote commit differs, the branch is flagged ``has_updates``
        and takes the remote's date and subject so it sorts to the top.
        """
        if fetch:
            self.fetch(prune=True)

        repo = self._get_repo()
        try:
            local_output = repo.git.for_each_ref(f"--format={REF_FORMAT}", "refs/heads/")
            remote_output = repo.git.for_each_ref(
                f"--format={REF_FORMAT}", f"refs/remotes/{self.remote_name}/"
            )
        except git.exc.GitCommandError as e:
            raise self._to_failure("list branches", e) from e

        branches: Dict[str, Branch] = {}

        for line in filter(None, local_output.splitlines()):
            parsed = _parse_ref_line(line)
            if parsed is None:
                continue
            name, date, commit, subject = parsed
            if name in branches or not is_valid_branch_name(name):
                continue
            branches[name] = Branch(name=name, commit=commit, date=date, subject=subject)

        remote_prefix = f"{self.remote_name}/"
        for line in filter(None, remote_output.splitlines()):
            parsed = _parse_ref_line(line)
            if parsed is None:
                continue
            full_name, date, commit, subject = parsed
            # refs/remotes/<remote>/HEAD shortens to just "<remote>"
            if not full_name.startswith(remote_prefix):
                continue
            name = full_name[len(remote_prefix):]
            if name == "HEAD" or not is_valid_branch_name(name):
                continue

            existing = branches.get(name)
            if existing is None:
                branches[name] = Branch(
                    name=name,
                    commit=commit,
                    date=date,
                    subject=subject,
                    is_local=False,
                    has_remote=True,
                )
            elif commit != existing.commit:
                branches[name] = Branch(
                    name=name,
                    commit=existing.commit,
                    date=date,
                    subject=subject or existing.subject,
                    has_remote=True,
                    has_updates=True,
                    remote_commit=commit,
                )
            else:
                branches[name] = Branch(
                    name=name,
                    commit=existing.commit,
                    date=existing.date,
                    subject=existing.subject,
                    has_remote=True,
                    remote_commit=commit,
                )

        result = sorted(branches.values(), key=lambda b: b.date, reverse=True)
        if self.debug_mode:
            logger.debug(f"Found {len(result)} branches")
        return result

    def checkout(self, branch_name: str, force: bool = False) -> None:
        """Check out a branch, creating a tracking branch for remote-only ones.

        Raises:
            InvalidUsageError: if the name is not a safe branch name
            GitCommandFailure: on a dirty working tree or a failed checkout
        """
        safe_name = sanitize_branch_name(branch_name)
        repo = self._get_repo()

        if not force and repo.is_dirty(untracked_files=False):
            raise GitCommandFailure(
                "checkout",
                "Cannot switch: uncommitted changes in working directory",
                branch=safe_name,
            )

        try:
            if safe_name in [head.name for head in repo.heads]:
                if force:
                    repo.git.checkout("--force", safe_name)
                else:
                    repo.git.checkout(safe_name)
            else:
                repo.git.checkout("-b", safe_name, f"{self.remote_name}/{safe_name}")
        except git.exc.GitCommandError as e:
            raise self._to_failure("checkout", e, branch=safe_name) from e

        logger.info(f"Checked out {safe_name}")

    def get_preview_data(self, branch_name: str, commit_count: int = 5, file_count: int = 10) -> dict:
        """Recent commits on a branch and files it changes relative to HEAD."""
        safe_name = sanitize_branch_name(branch_name)
        repo = self._get_repo()

        commits = []
        try:
            log_output = repo.git.log(safe_name, f"-{commit_count}", "--format=%h|%s|%cr")
        except git.exc.GitCommandError as e:
            raise self._to_failure("log", e, branch=safe_name) from e
        for line in filter(None, log_output.splitlines()):
            parts = line.split("|")
            if len(parts) >= 3:
                # Subjects may contain the separator; the relative time never does
                commits.append({
                    "hash": parts[0],
                    "subject": "|".join(parts[1:-1]),
                    "time": parts[-1],
                })

        try:
            diff_output = repo.git.diff("--name-only", f"HEAD...{safe_name}")
            files = [f for f in diff_output.splitlines() if f][:file_count]
        except git.exc.GitCommandError as e:
            # No common ancestor, or HEAD is unborn
            logger.debug(f"Could not diff {safe_name} against HEAD: {e}")
            files = []

        return {"commits": commits, "files": files}

    def count_behind(self, branch_name: str) -> int:
        """Number of commits on the remote-tracking branch missing from the local one."""
        safe_name = sanitize_branch_name(branch_name)
        try:
            output = self._get_repo().git.rev_list(
                "--count", f"{safe_name}..{self.remote_name}/{safe_name}", "--"
            )
        except git.exc.GitCommandError as e:
            raise self._to_failure("rev-list", e, branch=safe_name) from e
        return int(output.strip() or 0)

    def pull(self, branch_name: str) -> str:
        """Pull ``branch_name`` from the configured remote into the current checkout.

        Returns:
            The short hash of HEAD after the pull.

        Raises:
            NetworkError: if the remote could not be reached
            GitCommandFailure: on conflicts, a dirty tree or any other git failure
        """
        safe_name = sanitize_branch_name(branch_name)
        repo = self._get_repo()
        try:
            repo.git.pull(self.remote_name, safe_name, kill_after_timeout=self.fetch_timeout)
            head = repo.git.rev_parse("--short", "HEAD")
        except git.exc.GitCommandError as e:
            raise self._to_failure("pull", e, branch=safe_name) from e
        logger.info(f"Pulled {self.remote_name}/{safe_name} ({head})")
        return head

    def stash(self, message: str) -> None:
        """Stash tracked and untracked changes.

        Raises:
            GitCommandFailure: if there was nothing to stash or git failed
        """
        repo = self._get_repo()
        try:
            output = repo.git.stash("push", "--include-untracked", "-m", message)
        except git.exc.GitCommandError as e:
            raise self._to_failure("stash", e) from e
        if "No local changes" in output:
            raise GitCommandFailure("stash", "No local changes to save")
        logger.info(f"Stashed changes: {message}")

    def stash_pop(self) -> None:
        """Re-apply and drop the most recent stash."""
        try:
            self._get_repo().git.stash("pop")
        except git.exc.GitCommandError as e:
            raise self._to_failure("stash pop", e) from e
        logger.info("Restored stashed changes")

    def get_commits_by_day(
        self, branch_name: str, days: int = SPARKLINE_DAYS, now: Optional[datetime] = None
    ) -> List[int]:
        """Count commits per local calendar day over the last ``days`` days.

        The remote-tracking ref is preferred so the counts include work not
        pulled yet; local-only branches fall back to the local ref. A branch
        git cannot log yields all zeros.

        Returns:
            ``days`` counts, oldest day first, today last.
        """
        safe_name = sanitize_branch_name(branch_name)
        today = (now or datetime.now()).date()
        since = datetime.combine(today - timedelta(days=days - 1), datetime.min.time())
        counts = [0] * days

        repo = self._get_repo()
        output = None
        for ref in (f"{self.remote_name}/{safe_name}", safe_name):
            try:
                output = repo.git.log(ref, "--format=%ct", f"--since={since:%Y-%m-%d %H:%M:%S}", "--")
                break
            except git.exc.GitCommandError:
                continue
        if output is None:
            logger.debug(f"No commit activity for {safe_name}: no such ref")
            return counts

        for line in output.split():
            try:
                day = datetime.fromtimestamp(int(line)).date()
            except ValueError:
                continue
            index = days - 1 - (today - day).days
            if 0 <= index < days:
                counts[index] += 1
        return counts
