"""Services for git-watchtower"""

from git_watchtower.services.git_service import GitService
from git_watchtower.services.github_service import GitHubService
from git_watchtower.services.gitlab_service import GitLabService

__all__ = ["GitService", "GitHubService", "GitLabService"]
