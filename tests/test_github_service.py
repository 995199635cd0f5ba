"""Tests for GitHubService"""
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest

from git_watchtower.exceptions import GitHubAPIError
from git_watchtower.models.pr import PrState
from git_watchtower.services.github_service import GitHubService, parse_github_remote


def _pull(number, ref, state="open", merged=False):
    pull = Mock()
    pull.number = number
    pull.title = f"PR {number}"
    pull.state = state
    pull.merged_at = datetime(2024, 1, 1, tzinfo=timezone.utc) if merged else None
    pull.head.ref = ref
    return pull


@pytest.fixture
def service(git_repo, mock_config):
    return GitHubService(git_repo.working_dir, mock_config)


class TestParseRemote:
    """Test GitHub remote URL parsing."""

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("git@github.com:test/repo.git", "test/repo"),
            ("git@github.com:test/repo", "test/repo"),
            ("https://github.com/test/repo.git", "test/repo"),
            ("https://github.com/test/repo/", "test/repo"),
            ("https://gitlab.com/test/repo.git", None),
            ("/srv/git/repo.git", None),
            ("", None),
            (None, None),
        ],
    )
    def test_urls(self, url, expected):
        assert parse_github_remote(url) == expected


class TestGitHubServiceInit:
    """Test GitHubService initialization."""

    def test_token_from_config(self, service):
        assert service.github_token == "test_token_for_testing"
        assert service.enabled is False

    @patch.dict("os.environ", {"GITHUB_TOKEN": "env_token"})
    def test_token_from_env(self, git_repo):
        service = GitHubService(git_repo.working_dir, {"github_token": None})
        assert service.github_token == "env_token"

    def test_max_prs_from_config(self, git_repo):
        service = GitHubService(git_repo.working_dir, {"max_prs_to_fetch": 25})
        assert service.max_prs == 25


class TestGitHubServiceSetup:
    """Test GitHub API setup."""

    @pytest.mark.parametrize("url", ["git@github.com:test/repo.git", "https://github.com/test/repo.git"])
    def test_setup_with_github_url(self, service, url):
        with patch("git_watchtower.services.github_service.Github") as mock_github_class:
            mock_gh = Mock()
            mock_github_class.return_value = mock_gh

            assert service.setup_github_api(url) is True

            assert service.github_repo == "test/repo"
            assert service.enabled
            mock_gh.get_repo.assert_called_once_with("test/repo")

    def test_non_github_remote(self, service):
        with patch("git_watchtower.services.github_service.Github") as mock_github_class:
            assert service.setup_github_api("https://gitlab.com/test/repo.git") is False
            mock_github_class.assert_not_called()
        assert not service.enabled

    @patch.dict("os.environ", {}, clear=True)
    def test_no_token(self, git_repo):
        service = GitHubService(git_repo.working_dir, {})
        with patch("git_watchtower.services.github_service.Github") as mock_github_class:
            assert service.setup_github_api("git@github.com:test/repo.git") is False
            mock_github_class.assert_not_called()

    def test_api_failure_raises(self, service):
        with patch("git_watchtower.services.github_service.Github") as mock_github_class:
            mock_github_class.return_value.get_repo.side_effect = Exception("Bad credentials")

            with pytest.raises(GitHubAPIError) as exc_info:
                service.setup_github_api("git@github.com:test/repo.git")

        assert exc_info.value.operation == "setup"
        assert "Bad credentials" in str(exc_info.value)
        assert not service.enabled


class TestBulkPrStatus:
    """Test the bulk PR listing."""

    def test_disabled_returns_empty(self, service):
        assert service.get_bulk_pr_status() == {}

    def test_maps_head_branch_to_status(self, service):
        service.gh_repo = Mock()
        service.gh_repo.get_pulls.return_value = [
            _pull(7, "feature/a"),
            _pull(5, "feature/b", state="closed", merged=True),
            _pull(3, "feature/c", state="closed"),
        ]

        result = service.get_bulk_pr_status()

        service.gh_repo.get_pulls.assert_called_once_with(state="all", sort="updated", direction="desc")
        assert result["feature/a"].state is PrState.OPEN
        assert result["feature/b"].state is PrState.MERGED
        assert result["feature/c"].state is PrState.CLOSED

    def test_respects_max_prs(self, service):
        service.max_prs = 2
        service.gh_repo = Mock()
        service.gh_repo.get_pulls.return_value = [_pull(i, f"b{i}") for i in range(5)]

        assert set(service.get_bulk_pr_status()) == {"b0", "b1"}

    def test_api_error_wrapped(self, service):
        service.gh_repo = Mock()
        service.gh_repo.get_pulls.side_effect = Exception("rate limited")

        with pytest.raises(GitHubAPIError) as exc_info:
            service.get_bulk_pr_status()
        assert exc_info.value.operation == "get_bulk_pr_status"


class TestClose:
    """Test connection cleanup."""

    def test_close_releases_client(self, service):
        github = Mock()
        service.github = github
        service.gh_repo = Mock()

        service.close()

        github.close.assert_called_once()
        assert service.github is None
        assert not service.enabled

    def test_close_error_ignored(self, service):
        service.github = Mock()
        service.github.close.side_effect = Exception("already closed")
        service.close()
        assert service.github is None

    def test_close_without_client(self, service):
        service.close()
