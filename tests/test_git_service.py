"""Tests for GitService"""
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import Mock, patch

import git
import pytest

from git_watchtower.exceptions import GitCommandFailure, InvalidUsageError, NetworkError
from git_watchtower.services.git_service import (
    GitService,
    is_valid_branch_name,
    sanitize_branch_name,
)


class TestBranchNameValidation:
    """Test branch name checks."""

    @pytest.mark.parametrize(
        "name", ["main", "feature/login", "fix-123", "release/v1.2.3", "user_name/topic"]
    )
    def test_valid_names(self, name):
        assert is_valid_branch_name(name)
        assert sanitize_branch_name(name) == name

    @pytest.mark.parametrize(
        "name",
        ["", None, 42, "a..b", "-rf", "/abs", "trailing/", "has space", "semi;colon", "$(x)", "a" * 256],
    )
    def test_invalid_names(self, name):
        assert not is_valid_branch_name(name)
        with pytest.raises(InvalidUsageError):
            sanitize_branch_name(name)


class TestGitServiceInit:
    """Test GitService initialization."""

    def test_reads_config(self, git_repo, mock_config):
        service = GitService(git_repo.working_dir, mock_config)
        assert service.repo_path == git_repo.working_dir
        assert service.remote_name == "origin"
        assert service.fetch_timeout == mock_config.fetch_timeout

    def test_accepts_dict_config(self, git_repo):
        service = GitService(git_repo.working_dir, {"remote_name": "upstream"})
        assert service.remote_name == "upstream"

    def test_invalid_path_fails_lazily(self, temp_dir, mock_config):
        service = GitService(str(temp_dir / "nonexistent"), mock_config)
        with pytest.raises(Exception):
            service._get_repo()


class TestCurrentBranch:
    """Test HEAD resolution."""

    def test_on_branch(self, git_repo, mock_config):
        service = GitService(git_repo.working_dir, mock_config)
        assert service.get_current_branch() == ("main", False)

    def test_detached_head(self, git_repo, mock_config):
        sha = git_repo.head.commit.hexsha
        git_repo.git.checkout(sha)
        service = GitService(git_repo.working_dir, mock_config)

        name, detached = service.get_current_branch()
        assert detached is True
        assert name.startswith("HEAD@")
        assert sha.startswith(name[len("HEAD@"):])

    def test_empty_repository(self, temp_dir, mock_config):
        repo = git.Repo.init(temp_dir / "empty")
        service = GitService(repo.working_dir, mock_config)
        assert service.get_current_branch()[1] is False
        repo.close()


class TestListBranches:
    """Test branch listing."""

    def test_local_only_repository(self, git_repo, mock_config, commit_file):
        git_repo.git.checkout("-b", "feature/a")
        commit_file(git_repo, "a.txt", "a\n", "Add a")
        git_repo.git.checkout("main")

        service = GitService(git_repo.working_dir, mock_config)
        branches = service.get_all_branches(fetch=True)

        by_name = {b.name: b for b in branches}
        assert set(by_name) == {"main", "feature/a"}
        assert by_name["feature/a"].subject == "Add a"
        assert by_name["main"].is_local and not by_name["main"].has_remote
        assert len(by_name["main"].commit) >= 7

    def test_sorted_newest_first(self, git_repo, mock_config, commit_file):
        git_repo.git.checkout("-b", "feature/a")
        commit_file(git_repo, "a.txt", "a\n", "Add a")

        branches = GitService(git_repo.working_dir, mock_config).get_all_branches(fetch=False)
        dates = [b.date for b in branches]
        assert dates == sorted(dates, reverse=True)

    def test_merges_local_and_remote(self, git_repo, origin_repo, mock_config):
        service = GitService(git_repo.working_dir, mock_config)
        branches = service.get_all_branches(fetch=True)

        assert [b.name for b in branches] == ["main"]
        main = branches[0]
        assert main.is_local and main.has_remote
        assert main.has_updates is False
        assert main.remote_commit == main.commit

    def test_remote_only_and_updated_branches(
        self, git_repo, origin_repo, upstream_clone, mock_config, commit_file
    ):
        # Another developer pushes a new branch and a commit to main
        upstream_clone.git.checkout("-b", "feature/remote")
        commit_file(upstream_clone, "r.txt", "r\n", "Remote work")
        upstream_clone.git.push("origin", "feature/remote")
        upstream_clone.git.checkout("main")
        commit_file(upstream_clone, "m.txt", "m\n", "Upstream main change")
        upstream_clone.git.push("origin", "main")

        service = GitService(git_repo.working_dir, mock_config)
        by_name = {b.name: b for b in service.get_all_branches(fetch=True)}

        remote_only = by_name["feature/remote"]
        assert remote_only.is_local is False
        assert remote_only.has_remote is True
        assert remote_only.subject == "Remote work"

        main = by_name["main"]
        assert main.has_updates is True
        assert main.remote_commit != main.commit
        assert main.subject == "Upstream main change"

    def test_fetch_prunes_deleted_remote_branch(self, git_repo, origin_repo, upstream_clone, mock_config):
        upstream_clone.git.push("origin", "main:refs/heads/feature/short-lived")
        service = GitService(git_repo.working_dir, mock_config)
        assert "feature/short-lived" in {b.name for b in service.get_all_branches()}

        upstream_clone.git.push("origin", "--delete", "feature/short-lived")
        assert "feature/short-lived" not in {b.name for b in service.get_all_branches()}

    def test_remote_head_ref_ignored(self, git_repo, origin_repo, mock_config):
        git_repo.git.remote("set-head", "origin", "main")
        names = [b.name for b in GitService(git_repo.working_dir, mock_config).get_all_branches()]
        assert names == ["main"]


class TestFetch:
    """Test fetching."""

    def test_no_remote_skips_fetch(self, git_repo, mock_config):
        assert GitService(git_repo.working_dir, mock_config).fetch() is False

    def test_fetch_from_origin(self, git_repo, origin_repo, mock_config):
        assert GitService(git_repo.working_dir, mock_config).fetch() is True

    def test_unreachable_remote_raises_network_error(self, git_repo, mock_config):
        git_repo.create_remote("origin", "https://invalid.invalid/test/repo.git")
        service = GitService(git_repo.working_dir, mock_config)

        error = git.exc.GitCommandError(
            ["git", "fetch", "origin"], 128, stderr="fatal: unable to access: Could not resolve host"
        )
        with patch.object(git.cmd.Git, "fetch", Mock(side_effect=error), create=True):
            with pytest.raises(NetworkError) as exc_info:
                service.fetch()

        assert exc_info.value.is_network_error()
        assert "Could not resolve host" in exc_info.value.stderr

    def test_other_failures_are_command_failures(self, git_repo, mock_config):
        git_repo.create_remote("origin", "/nonexistent/path/repo.git")
        service = GitService(git_repo.working_dir, mock_config)

        with pytest.raises(GitCommandFailure) as exc_info:
            service.fetch()

        assert exc_info.value.operation == "fetch"
        assert exc_info.value.kind == GitCommandFailure.KIND_COMMAND


class TestCheckout:
    """Test switching branches."""

    def test_checkout_local_branch(self, git_repo, mock_config):
        git_repo.git.branch("feature/a")
        service = GitService(git_repo.working_dir, mock_config)

        service.checkout("feature/a")
        assert git_repo.active_branch.name == "feature/a"

    def test_checkout_creates_tracking_branch(self, git_repo, origin_repo, upstream_clone, mock_config):
        upstream_clone.git.push("origin", "main:refs/heads/feature/remote")
        service = GitService(git_repo.working_dir, mock_config)
        service.fetch()

        service.checkout("feature/remote")
        assert git_repo.active_branch.name == "feature/remote"
        assert git_repo.active_branch.tracking_branch().name == "origin/feature/remote"

    def test_dirty_tree_refused(self, git_repo, mock_config):
        git_repo.git.branch("feature/a")
        readme = Path(git_repo.working_tree_dir) / "README.md"
        readme.write_text(readme.read_text() + "dirty\n")
        service = GitService(git_repo.working_dir, mock_config)

        with pytest.raises(GitCommandFailure) as exc_info:
            service.checkout("feature/a")

        assert exc_info.value.is_dirty_working_dir()
        assert git_repo.active_branch.name == "main"

    def test_invalid_name_refused(self, git_repo, mock_config):
        with pytest.raises(InvalidUsageError):
            GitService(git_repo.working_dir, mock_config).checkout("bad name; rm -rf")

    def test_missing_branch_fails(self, git_repo, mock_config):
        service = GitService(git_repo.working_dir, mock_config)
        with pytest.raises(GitCommandFailure) as exc_info:
            service.checkout("feature/missing")
        assert exc_info.value.branch == "feature/missing"


class TestPreviewData:
    """Test branch preview."""

    def test_commits_and_files(self, git_repo, mock_config, commit_file):
        git_repo.git.checkout("-b", "feature/a")
        commit_file(git_repo, "src/a.py", "a = 1\n", "Add a | with pipe")
        commit_file(git_repo, "src/b.py", "b = 2\n", "Add b")
        git_repo.git.checkout("main")

        data = GitService(git_repo.working_dir, mock_config).get_preview_data("feature/a")

        assert [c["subject"] for c in data["commits"]] == ["Add b", "Add a | with pipe", "Initial commit"]
        assert sorted(data["files"]) == ["src/a.py", "src/b.py"]

    def test_limits(self, git_repo, mock_config, commit_file):
        for i in range(4):
            commit_file(git_repo, f"f{i}.txt", "x\n", f"Commit {i}")

        data = GitService(git_repo.working_dir, mock_config).get_preview_data(
            "main", commit_count=2, file_count=1
        )
        assert len(data["commits"]) == 2
        assert data["files"] == []

    def test_unknown_branch(self, git_repo, mock_config):
        with pytest.raises(GitCommandFailure):
            GitService(git_repo.working_dir, mock_config).get_preview_data("nope")


class TestPull:
    """Test pulling the current branch."""

    def test_fast_forward(self, git_repo, origin_repo, upstream_clone, mock_config, commit_file):
        commit_file(upstream_clone, "m.txt", "m\n", "Upstream main change")
        upstream_clone.git.push("origin", "main")
        service = GitService(git_repo.working_dir, mock_config)
        service.fetch()

        assert service.count_behind("main") == 1
        head = service.pull("main")

        assert git_repo.head.commit.message.strip() == "Upstream main change"
        assert git_repo.head.commit.hexsha.startswith(head)
        assert service.count_behind("main") == 0

    def test_unpushed_local_commits_are_not_behind(self, git_repo, origin_repo, mock_config, commit_file):
        commit_file(git_repo, "local.txt", "l\n", "Local only")
        assert GitService(git_repo.working_dir, mock_config).count_behind("main") == 0

    def test_merge_conflict_detected(self, git_repo, origin_repo, upstream_clone, mock_config, commit_file):
        git_repo.git.config("pull.rebase", "false")
        commit_file(upstream_clone, "README.md", "upstream\n", "Upstream edit")
        upstream_clone.git.push("origin", "main")
        commit_file(git_repo, "README.md", "local\n", "Local edit")

        with pytest.raises(GitCommandFailure) as exc_info:
            GitService(git_repo.working_dir, mock_config).pull("main")

        assert exc_info.value.operation == "pull"
        assert exc_info.value.is_merge_conflict()
        assert exc_info.value.branch == "main"

    def test_dirty_tree_blocks_pull(self, git_repo, origin_repo, upstream_clone, mock_config, commit_file):
        commit_file(upstream_clone, "README.md", "upstream\n", "Upstream edit")
        upstream_clone.git.push("origin", "main")
        readme = Path(git_repo.working_tree_dir) / "README.md"
        readme.write_text("uncommitted\n")

        with pytest.raises(GitCommandFailure) as exc_info:
            GitService(git_repo.working_dir, mock_config).pull("main")

        assert exc_info.value.is_dirty_working_dir()
        assert readme.read_text() == "uncommitted\n"

    def test_invalid_name_refused(self, git_repo, mock_config):
        with pytest.raises(InvalidUsageError):
            GitService(git_repo.working_dir, mock_config).pull("main; rm -rf /")


class TestStash:
    """Test stashing and restoring local changes."""

    def test_stash_then_pop(self, git_repo, mock_config):
        readme = Path(git_repo.working_tree_dir) / "README.md"
        readme.write_text("work in progress\n")
        scratch = Path(git_repo.working_tree_dir) / "scratch.txt"
        scratch.write_text("untracked\n")
        service = GitService(git_repo.working_dir, mock_config)

        service.stash("git-watchtower: auto-stash before pull")

        assert not git_repo.is_dirty(untracked_files=True)
        assert "auto-stash before pull" in git_repo.git.stash("list")

        service.stash_pop()

        assert readme.read_text() == "work in progress\n"
        assert scratch.read_text() == "untracked\n"
        assert git_repo.git.stash("list") == ""

    def test_clean_tree_has_nothing_to_stash(self, git_repo, mock_config):
        with pytest.raises(GitCommandFailure) as exc_info:
            GitService(git_repo.working_dir, mock_config).stash("nothing here")
        assert exc_info.value.operation == "stash"

    def test_pop_without_stash_fails(self, git_repo, mock_config):
        with pytest.raises(GitCommandFailure) as exc_info:
            GitService(git_repo.working_dir, mock_config).stash_pop()
        assert exc_info.value.operation == "stash pop"


def _commit_at(repo, filename, when):
    path = Path(repo.working_dir) / filename
    path.write_text(filename)
    repo.index.add([filename])
    stamp = f"{int(when.timestamp())} +0000"
    return repo.index.commit(f"Add {filename}", author_date=stamp, commit_date=stamp)


class TestCommitsByDay:
    """Test daily commit counts for sparklines."""

    def test_counts_per_day(self, git_repo, mock_config):
        now = datetime.now()
        # Oldest first: git stops walking at the first commit outside the window
        git_repo.git.checkout("--orphan", "activity")
        _commit_at(git_repo, "ten_days.txt", now - timedelta(days=10))
        _commit_at(git_repo, "two_days_a.txt", now - timedelta(days=2))
        _commit_at(git_repo, "two_days_b.txt", now - timedelta(days=2))
        _commit_at(git_repo, "today.txt", now)

        counts = GitService(git_repo.working_dir, mock_config).get_commits_by_day("activity", now=now)

        assert counts == [0, 0, 0, 0, 2, 0, 1]

    def test_prefers_remote_ref(self, git_repo, origin_repo, upstream_clone, mock_config, commit_file):
        commit_file(upstream_clone, "u.txt", "u\n", "Upstream work")
        upstream_clone.git.push("origin", "main")
        service = GitService(git_repo.working_dir, mock_config)
        service.fetch()

        assert service.get_commits_by_day("main")[-1] == 2

    def test_unknown_branch_is_all_zeros(self, git_repo, mock_config):
        assert GitService(git_repo.working_dir, mock_config).get_commits_by_day("feature/none") == [0] * 7


def test_remote_url(git_repo, mock_config):
    service = GitService(git_repo.working_dir, mock_config)
    assert service.get_remote_url() is None

    git_repo.create_remote("origin", "git@github.com:test/test-repo.git")
    assert service.get_remote_url() == "git@github.com:test/test-repo.git"
