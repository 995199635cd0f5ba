"""Core functionality for git-watchtower"""

import asyncio
import os
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from git_watchtower.config import Config
from git_watchtower.exceptions import (
    GitCommandFailure,
    InvalidUsageError,
    OperationTimeoutError,
    PrSourceError,
    is_retryable,
    to_user_message,
)
from git_watchtower.formatters.activity import format_sparkline
from git_watchtower.logging_config import get_logger
from git_watchtower.models.pr import PrStatus
from git_watchtower.polling.engine import (
    VERY_SLOW_FETCH,
    WARNING_RESTORED,
    WARNING_SLOW,
    WARNING_VERY_SLOW,
    PollCycleResult,
    calculate_adaptive_interval,
    reconcile_branches,
)
from git_watchtower.services.git_service import GitService
from git_watchtower.services.github_service import GitHubService
from git_watchtower.services.gitlab_service import GitLabService
from git_watchtower.services.pr_status import PLATFORM_GITLAB, detect_platform
from git_watchtower.state.store import DirtyOperation, Store, UIMode, create_store
from git_watchtower.utils.concurrency import Mutex, retry, with_timeout

logger = get_logger(__name__)

# Consecutive network failures before the dashboard shows offline
OFFLINE_THRESHOLD = 3

STASH_HINT = "Uncommitted changes - press S to stash and retry"


class Watchtower:
    """Owns the store and drives poll cycles and branch switches.

    Collaborator calls block, so each one runs in a worker thread. Poll
    cycles and switches hold the same Mutex and never interleave.
    """

    def __init__(
        self,
        repo_path: str,
        config: Union[Config, dict],
        store: Optional[Store] = None,
        git_service: Optional[GitService] = None,
        github_service: Optional[GitHubService] = None,
        gitlab_service: Optional[GitLabService] = None,
    ):
        """Initialize Watchtower.

        Args:
            repo_path: Path to git repository
            config: Configuration dict or Config object
            store: Store to drive; a new one is created if omitted
            git_service: Git collaborator (injected in tests)
            github_service: PR collaborator for GitHub remotes
            gitlab_service: MR collaborator for GitLab remotes
        """
        self.repo_path = repo_path
        if isinstance(config, dict):
            self.config = Config.from_dict(config)
        else:
            self.config = config

        self.store = store or create_store(
            adaptive_poll_interval=self.config.poll_interval,
            max_log_entries=self.config.max_log_entries,
            max_server_log_lines=self.config.max_server_log_lines,
            visible_branch_count=self.config.visible_branches,
            project_name=os.path.basename(os.path.abspath(repo_path)),
        )
        self.mutex = Mutex()
        self.git_service = git_service or GitService(repo_path, self.config)
        if github_service is None and self.config.github_enabled:
            github_service = GitHubService(repo_path, self.config)
        self.github_service = github_service
        if gitlab_service is None and self.config.gitlab_enabled:
            gitlab_service = GitLabService(repo_path, self.config)
        self.gitlab_service = gitlab_service
        # Whichever of the two matched the remote, once setup ran
        self.pr_service: Optional[Union[GitHubService, GitLabService]] = None

        self._initialized = False
        self._pr_checked = False
        self._sparklines_at: Optional[float] = None
        self._last_warning: Optional[str] = None

    @property
    def interval_seconds(self) -> float:
        """Delay before the next poll cycle."""
        return self.store.get("adaptive_poll_interval") / 1000

    async def _guarded(self, fn: Callable[..., Any], timeout: float, message: str, *args) -> Any:
        """Run a blocking call in a thread, bounded by ``timeout`` and retried.

        Only network failures and timeouts get another attempt.
        """
        async def attempt():
            return await with_timeout(asyncio.to_thread(fn, *args), timeout, message)

        return await retry(
            attempt,
            max_attempts=self.config.retry_attempts,
            base_delay=self.config.retry_base_delay,
            should_retry=is_retryable,
        )

    def setup_pr_source(self) -> Optional[str]:
        """Connect the PR collaborator matching the remote's host.

        Blocking; run from a worker thread.

        Returns:
            The platform whose PR status is now available, or None.
        """
        remote_url = self.git_service.get_remote_url()
        platform = detect_platform(remote_url)
        try:
            if platform == PLATFORM_GITLAB:
                service = self.gitlab_service
                connected = service is not None and service.setup_gitlab(remote_url)
            else:
                service = self.github_service
                connected = service is not None and service.setup_github_api(remote_url)
        except PrSourceError as e:
            logger.warning(f"PR status disabled: {e}")
            return None

        if not connected:
            return None
        self.pr_service = service
        return platform

    async def _fetch_pr_status(self, previous: Dict[str, PrStatus]) -> Dict[str, PrStatus]:
        """Current PR map, or the previous one if the lookup failed."""
        if self.github_service is None and self.gitlab_service is None:
            return dict(previous)

        if not self._pr_checked:
            self._pr_checked = True
            platform = await asyncio.to_thread(self.setup_pr_source)
            if platform == PLATFORM_GITLAB:
                self.store.add_log("GitLab merge request status enabled", "info")
            elif platform is not None:
                self.store.add_log("GitHub PR status enabled", "info")

        service = self.pr_service
        if service is None or not service.enabled:
            return dict(previous)

        try:
            return await self._guarded(
                service.get_bulk_pr_status,
                self.config.git_timeout,
                "PR status lookup timed out",
            )
        except (PrSourceError, OperationTimeoutError) as e:
            logger.warning(f"Keeping previous PR status: {e}")
            return dict(previous)

    async def poll_once(self) -> Optional[PollCycleResult]:
        """Run one poll cycle.

        Returns:
            The cycle result, or None if the cycle failed. A failed cycle
            leaves the last good branch list in place.
        """
        async with self.mutex:
            return await self._poll_locked()

    async def _poll_locked(self) -> Optional[PollCycleResult]:
        self.store.set_state(is_polling=True, polling_status="fetching")
        started = time.monotonic()

        try:
            current_branch, is_detached = await self._guarded(
                self.git_service.get_current_branch, self.config.git_timeout, "git timed out"
            )
            fetched = await self._guarded(
                self.git_service.get_all_branches, self.config.fetch_timeout, "Fetch timed out"
            )
        except Exception as e:
            self._handle_poll_failure(e, (time.monotonic() - started) * 1000)
            return None

        duration = (time.monotonic() - started) * 1000
        pr_status = await self._fetch_pr_status(self.store.get("pr_status_by_name"))

        # Read after the awaits: the user may have moved the cursor meanwhile
        state = self.store.get_state()
        if state.current_branch and current_branch and current_branch != state.current_branch:
            self.store.add_log(
                f"Branch switched externally: {state.current_branch} → {current_branch}",
                "warning",
            )

        result = reconcile_branches(
            state.branches,
            fetched,
            pr_status_by_name=pr_status,
            current_branch=current_branch,
            previous_name=state.selected_branch_name,
            previous_index=state.selected_index,
            detect_new=self._initialized,
        )
        adaptive = calculate_adaptive_interval(
            duration, state.adaptive_poll_interval, self.config.poll_interval
        )
        result.interval = adaptive.interval
        result.warning = adaptive.warning

        self.store.set_state(
            branches=result.branches,
            selected_index=result.selected_index,
            selected_branch_name=result.selected_branch_name,
            current_branch=current_branch,
            is_detached_head=is_detached,
            pr_status_by_name=pr_status,
            adaptive_poll_interval=adaptive.interval,
            last_fetch_duration=duration,
            consecutive_network_failures=0,
            is_offline=False,
            is_polling=False,
            polling_status="idle",
        )
        self._initialized = True

        if state.is_offline:
            self.store.add_log("Connection restored", "success")
        self._log_interval_change(adaptive.warning, duration, adaptive.interval)
        self._log_changes(result)

        await self._refresh_sparklines()
        await self._auto_pull(current_branch, is_detached)
        return result

    def _log_changes(self, result: PollCycleResult) -> None:
        for branch in result.new_branches:
            self.store.add_log(f"New branch: {branch.name}", "success")
        for branch in result.deleted_branches:
            self.store.add_log(f"Branch deleted: {branch.name}", "warning")
        for branch in result.updated_branches:
            self.store.add_log(f"Update on {branch.name}: {branch.commit}", "update")

        notify = [b.name for b in result.updated_branches + result.new_branches]
        if notify:
            self.store.flash(", ".join(notify), "update")

    def _log_interval_change(self, warning: Optional[str], duration: float, interval: int) -> None:
        """Log pacing changes once per transition."""
        if warning == self._last_warning:
            return
        self._last_warning = warning

        seconds = round(duration / 1000)
        if warning == WARNING_VERY_SLOW:
            self.store.add_log(f"Fetches taking {seconds}s - network may be slow", "warning")
            self.store.add_log(f"Polling interval increased to {interval / 1000:g}s", "info")
        elif warning == WARNING_SLOW:
            self.store.add_log(f"Fetches taking {seconds}s", "warning")
        elif warning == WARNING_RESTORED:
            self.store.add_log(f"Polling interval restored to {interval / 1000:g}s", "info")

    def _handle_poll_failure(self, error: Exception, duration: float) -> None:
        state = self.store.get_state()
        timed_out = isinstance(error, OperationTimeoutError)
        if timed_out:
            # A fetch that never finished is at least a very slow one
            duration = max(duration, VERY_SLOW_FETCH + 1)

        adaptive = calculate_adaptive_interval(
            duration, state.adaptive_poll_interval, self.config.poll_interval
        )
        updates: Dict[str, Any] = {
            "is_polling": False,
            "polling_status": "error",
            "last_fetch_duration": duration,
            "adaptive_poll_interval": adaptive.interval,
        }

        message = to_user_message(error)
        if is_retryable(error):
            failures = state.consecutive_network_failures + 1
            updates["consecutive_network_failures"] = failures
            if failures >= OFFLINE_THRESHOLD and not state.is_offline:
                updates["is_offline"] = True
                logger.warning(f"Network unavailable ({failures} failures): {error}")
                self.store.set_state(updates)
                self.store.add_log(f"Network unavailable ({failures} failures)", "error")
                self.store.flash("Network unavailable - check your connection", "error")
                return
            logger.info(f"Poll failed with transient error: {error}")
        elif isinstance(error, GitCommandFailure) and error.is_auth_error():
            logger.error(f"Authentication error during poll: {error}")
        else:
            logger.error(f"Polling error: {error}", exc_info=not isinstance(error, GitCommandFailure))

        self.store.set_state(updates)
        self.store.add_log(f"Polling error: {message}", "error")

    async def switch_branch(
        self, branch_name: str, record_history: bool = True, stash_changes: bool = False
    ) -> bool:
        """Check out ``branch_name``.

        With ``stash_changes`` uncommitted work is stashed first and
        restored again if the checkout still fails.

        Returns:
            True on success. Failures are logged and flashed, not raised.
        """
        async with self.mutex:
            if stash_changes:
                return await self._stash_and_run(
                    f"switching to {branch_name}",
                    f"Stashed & switched to {branch_name}",
                    lambda: self._switch_locked(branch_name, record_history),
                )
            return await self._switch_locked(branch_name, record_history)

    async def _switch_locked(self, branch_name: str, record_history: bool) -> bool:
        previous_branch = self.store.get("current_branch")
        self.store.add_log(f"Switching to {branch_name}...", "update")

        try:
            await self._guarded(
                self.git_service.checkout, self.config.git_timeout, "Checkout timed out", branch_name
            )
        except InvalidUsageError:
            self.store.add_log(f"Invalid branch name: {branch_name}", "error")
            self.store.flash(f"Invalid branch name: {branch_name}", "error")
            return False
        except Exception as e:
            message = to_user_message(e)
            logger.warning(f"Failed to switch to {branch_name}: {e}")
            self.store.add_log(f"Failed to switch: {message}", "error")
            if isinstance(e, GitCommandFailure) and e.is_dirty_working_dir():
                self.store.set_state(pending_dirty_operation=DirtyOperation("switch", branch_name))
                self.store.flash(STASH_HINT, "warning")
            else:
                self.store.flash(message, "error")
            return False

        # Seeing a branch clears its "new" highlight
        branches = [
            replace(b, is_new=False, new_at=None) if b.name == branch_name and b.is_new else b
            for b in self.store.get("branches")
        ]
        self.store.set_state(
            current_branch=branch_name,
            is_detached_head=False,
            branches=branches,
            pending_dirty_operation=None,
        )

        if record_history and previous_branch and previous_branch != branch_name:
            self.store.add_to_history(previous_branch, branch_name)

        self.store.add_log(f"Switched to {branch_name}", "success")
        return True

    async def pull_current(self, stash_changes: bool = False) -> bool:
        """Pull the checked-out branch from the remote.

        Returns:
            True on success. Failures are logged and flashed, not raised.
        """
        async with self.mutex:
            state = self.store.get_state()
            if not state.current_branch or state.is_detached_head:
                self.store.add_log("Cannot pull: no branch checked out", "warning")
                self.store.flash("Cannot pull: no branch checked out", "warning")
                return False

            branch_name = state.current_branch
            if stash_changes:
                return await self._stash_and_run(
                    "pull",
                    "Stashed & pulled successfully",
                    lambda: self._pull_locked(branch_name),
                )
            return await self._pull_locked(branch_name)

    async def _pull_locked(self, branch_name: str, auto: bool = False) -> bool:
        if not auto:
            self.store.add_log(f"Pulling from {self.config.remote_name}/{branch_name}...", "update")

        try:
            head = await self._guarded(
                self.git_service.pull, self.config.fetch_timeout, "Pull timed out", branch_name
            )
        except Exception as e:
            self._handle_pull_failure(e, branch_name, auto)
            return False

        branches = [
            replace(b, commit=head, has_updates=False) if b.name == branch_name else b
            for b in self.store.get("branches")
        ]
        self.store.set_state(
            branches=branches, has_merge_conflict=False, pending_dirty_operation=None
        )
        if auto:
            self.store.add_log(f"Pulled successfully from {branch_name}", "success")
            self.store.flash(f"Pulled {branch_name}", "success")
        else:
            self.store.add_log("Pulled successfully", "success")
            self.store.flash("Pulled successfully", "success")
        return True

    def _handle_pull_failure(self, error: Exception, branch_name: str, auto: bool) -> None:
        message = to_user_message(error)
        failure = error if isinstance(error, GitCommandFailure) else None

        if failure is not None and failure.is_merge_conflict():
            logger.warning(f"Merge conflict pulling {branch_name}: {error}")
            self.store.set_state(has_merge_conflict=True)
            self.store.add_log("MERGE CONFLICT detected!", "error")
            self.store.add_log("Resolve conflicts manually, then commit", "warning")
            self.store.flash("Merge conflict! Resolve manually", "error")
            return

        logger.warning(f"Pull of {branch_name} failed: {error}")
        self.store.add_log(f"{'Auto-pull' if auto else 'Pull'} failed: {message}", "error")
        if auto:
            return
        if failure is not None and failure.is_dirty_working_dir():
            self.store.set_state(pending_dirty_operation=DirtyOperation("pull", branch_name))
            self.store.flash(STASH_HINT, "warning")
        else:
            self.store.flash(message, "error")

    async def _auto_pull(self, current_branch: Optional[str], is_detached: bool) -> None:
        """Pull the current branch when the remote has commits it lacks."""
        if not self.config.auto_pull or is_detached or not current_branch:
            return
        state = self.store.get_state()
        if state.has_merge_conflict:
            return
        record = next((b for b in state.branches if b.name == current_branch), None)
        if record is None or not record.has_updates:
            return

        # has_updates only says the commits differ; unpushed local work differs too
        try:
            behind = await self._guarded(
                self.git_service.count_behind, self.config.git_timeout, "git timed out", current_branch
            )
        except Exception as e:
            logger.debug(f"Could not compare {current_branch} with its remote: {e}")
            return
        if not behind:
            return

        self.store.add_log(f"Auto-pulling changes for {current_branch}...", "update")
        await self._pull_locked(current_branch, auto=True)

    async def _stash_and_run(
        self, action: str, success_message: str, operation: Callable[[], Awaitable[bool]]
    ) -> bool:
        """Stash local changes, run ``operation`` and restore the stash if it fails."""
        self.store.add_log("Stashing uncommitted changes...", "update")
        try:
            await self._guarded(
                self.git_service.stash,
                self.config.git_timeout,
                "Stash timed out",
                f"git-watchtower: auto-stash before {action}",
            )
        except Exception as e:
            message = to_user_message(e)
            logger.warning(f"Stash before {action} failed: {e}")
            self.store.add_log(f"Stash failed: {message}", "error")
            self.store.flash(f"Stash failed: {message}", "error")
            return False
        self.store.add_log("Changes stashed successfully", "success")

        if await operation():
            self.store.flash(success_message, "success")
            return True

        label = action[:1].upper() + action[1:]
        self.store.add_log(f"{label} failed after stash - restoring stashed changes...", "warning")
        try:
            await self._guarded(self.git_service.stash_pop, self.config.git_timeout, "Stash pop timed out")
        except Exception as e:
            logger.error(f"Could not restore stash after failed {action}: {e}")
            self.store.add_log("Warning: could not restore stashed changes. Run: git stash pop", "error")
        else:
            self.store.add_log("Stashed changes restored", "info")
        return False

    async def stash_and_retry(self) -> bool:
        """Stash local changes and retry the switch or pull they blocked."""
        pending = self.store.get("pending_dirty_operation")
        if pending is None:
            self.store.add_log("Nothing to stash and retry", "warning")
            return False

        self.store.set_state(pending_dirty_operation=None)
        if pending.kind == "switch":
            return await self.switch_branch(pending.branch, stash_changes=True)
        return await self.pull_current(stash_changes=True)

    async def undo_switch(self) -> bool:
        """Switch back to the branch before the most recent switch."""
        last = self.store.get_last_switch()
        if last is None:
            self.store.add_log("No switch history to undo", "warning")
            return False

        self.store.add_log(f"Undoing: going back to {last.from_branch}", "update")
        if not await self.switch_branch(last.from_branch, record_history=False):
            return False

        self.store.pop_history()
        self.store.add_log(f"Undone: back on {last.from_branch}", "success")
        return True

    async def show_preview(self, branch_name: str) -> bool:
        """Load recent commits and changed files for a branch into preview mode."""
        try:
            data = await self._guarded(
                self.git_service.get_preview_data,
                self.config.git_timeout,
                "Preview timed out",
                branch_name,
            )
        except Exception as e:
            logger.debug(f"Preview failed for {branch_name}: {e}")
            self.store.flash(f"No preview for {branch_name}", "warning")
            return False

        self.store.set_state(preview_data=data)
        self.store.set_mode(UIMode.PREVIEW)
        return True

    async def _refresh_sparklines(self) -> None:
        """Recompute 7-day activity for the newest branches once the cache is stale."""
        now = time.monotonic()
        if self._sparklines_at is not None and now - self._sparklines_at < self.config.sparkline_refresh:
            return

        names = [b.name for b in self.store.get("branches") if not b.is_deleted]
        sparklines: Dict[str, str] = {}
        for name in names[: self.config.sparkline_branches]:
            try:
                counts = await with_timeout(
                    asyncio.to_thread(self.git_service.get_commits_by_day, name),
                    self.config.git_timeout,
                    "Activity lookup timed out",
                )
            except Exception as e:
                logger.debug(f"No activity sparkline for {name}: {e}")
                continue
            sparklines[name] = format_sparkline(counts)

        self._sparklines_at = now
        self.store.set_state(sparkline_by_name=sparklines)

    async def fetch_all(self) -> Optional[PollCycleResult]:
        """Fetch right away and recompute every activity sparkline."""
        async with self.mutex:
            self.store.add_log("Fetching all branches...", "update")
            self.store.add_log("Refreshing activity sparklines...", "info")
            self._sparklines_at = None
            return await self._poll_locked()

    def close(self) -> None:
        """Release collaborator resources."""
        for service in (self.github_service, self.gitlab_service):
            if service is not None:
                service.close()
