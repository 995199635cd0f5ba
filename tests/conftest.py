"""Pytest fixtures for git-watchtower tests"""
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock

import git
import pytest

from git_watchtower.config import Config
from git_watchtower.models.branch import Branch
from git_watchtower.models.pr import PrState, PrStatus
from git_watchtower.state.store import create_store

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _configure_user(repo):
    with repo.config_writer() as writer:
        writer.set_value("user", "name", "Test User")
        writer.set_value("user", "email", "test@example.com")


def _commit_file(repo, filename, content, message):
    """Write a file in the repo's working tree and commit it."""
    path = Path(repo.working_dir) / filename
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    repo.index.add([filename])
    return repo.index.commit(message)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def mock_config():
    """Configuration with fast retries and PR lookups disabled."""
    return Config(
        poll_interval=5000,
        retry_attempts=3,
        retry_base_delay=0.0,
        github_enabled=False,
        gitlab_enabled=False,
        github_token="test_token_for_testing",
    )


@pytest.fixture
def git_repo(temp_dir):
    """Create a real Git repository with one commit on main."""
    repo_path = temp_dir / "test_repo"
    repo_path.mkdir()

    repo = git.Repo.init(repo_path)
    _configure_user(repo)
    _commit_file(repo, "README.md", "# Test Repository\n", "Initial commit")
    repo.git.branch("-M", "main")

    yield repo

    repo.close()


@pytest.fixture
def origin_repo(temp_dir, git_repo):
    """A bare repository wired up as git_repo's origin, with main pushed."""
    origin_path = temp_dir / "origin.git"
    origin = git.Repo.init(origin_path, bare=True)
    git_repo.create_remote("origin", str(origin_path))
    git_repo.git.push("origin", "main")
    origin.git.symbolic_ref("HEAD", "refs/heads/main")
    git_repo.git.fetch("origin")

    yield origin

    origin.close()


@pytest.fixture
def upstream_clone(temp_dir, origin_repo):
    """A second clone of origin, standing in for another developer."""
    clone = git.Repo.clone_from(str(temp_dir / "origin.git"), temp_dir / "upstream")
    _configure_user(clone)

    yield clone

    clone.close()


@pytest.fixture
def make_branch():
    """Factory for Branch records dated relative to NOW."""
    def factory(name, minutes_ago=0, commit=None, **kwargs):
        return Branch(
            name=name,
            commit=commit or f"c-{name}",
            date=NOW - timedelta(minutes=minutes_ago),
            subject=f"Work on {name}",
            **kwargs,
        )
    return factory


@pytest.fixture
def store():
    """A fresh Store with a fixed terminal size."""
    return create_store(terminal_width=120, terminal_height=40)


@pytest.fixture
def mock_pr_status():
    """PR map covering each state."""
    return {
        "feature/open": PrStatus(12, "Open work", PrState.OPEN, checks_pass=True, checks_count=2),
        "feature/merged": PrStatus(10, "Merged work", PrState.MERGED),
        "feature/closed": PrStatus(8, "Abandoned", PrState.CLOSED),
        "main": PrStatus(3, "Release", PrState.MERGED),
    }


@pytest.fixture
def mock_git_service():
    """A Mock standing in for GitService."""
    service = Mock()
    service.get_current_branch = Mock(return_value=("main", False))
    service.get_all_branches = Mock(return_value=[])
    service.get_remote_url = Mock(return_value=None)
    service.checkout = Mock(return_value=None)
    service.get_preview_data = Mock(return_value={"commits": [], "files": []})
    service.pull = Mock(return_value="abc1234")
    service.count_behind = Mock(return_value=1)
    service.stash = Mock(return_value=None)
    service.stash_pop = Mock(return_value=None)
    service.get_commits_by_day = Mock(return_value=[0] * 7)
    return service


@pytest.fixture
def commit_file():
    """Helper that writes and commits a file: commit_file(repo, name, content, message)."""
    return _commit_file
