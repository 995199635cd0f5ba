"""Custom exceptions for git-watchtower"""

from typing import Optional


NETWORK_PATTERNS = (
    "Could not resolve host",
    "Connection refused",
    "Connection timed out",
    "Network is unreachable",
    "fatal: unable to access",
    "SSL certificate problem",
)

AUTH_PATTERNS = (
    "Authentication failed",
    "Permission denied",
    "Invalid username or password",
    "could not read Username",
    "fatal: Authentication",
)

CONFLICT_PATTERNS = (
    "CONFLICT",
    "Automatic merge failed",
    "fix conflicts",
    "Merge conflict",
)

DIRTY_PATTERNS = (
    "Your local changes",
    "uncommitted changes",
    "Please commit your changes",
    "overwritten by checkout",
)


class WatchtowerError(Exception):
    """Base exception for all git-watchtower errors."""
    pass


class InvalidUsageError(WatchtowerError, ValueError):
    """Raised when an operation receives malformed arguments. Never retried."""
    pass


class ConfigError(WatchtowerError):
    """Exception raised for invalid configuration values."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Invalid configuration for '{field}': {message}")


class OperationTimeoutError(WatchtowerError, TimeoutError):
    """Raised when an awaited operation misses its deadline."""

    def __init__(self, message: str = "Operation timed out"):
        self.message = message
        super().__init__(message)


class GitCommandFailure(WatchtowerError):
    """Exception raised when a git command fails.

    Carries the captured diagnostic output so callers can classify the
    failure (network, auth, conflicts, dirty tree) without re-running it.
    """

    KIND_COMMAND = "command-failure"
    KIND_NETWORK = "network"
    KIND_TIMEOUT = "timeout"

    def __init__(
        self,
        operation: str,
        message: Optional[str] = None,
        stderr: Optional[str] = None,
        kind: str = KIND_COMMAND,
        branch: Optional[str] = None,
    ):
        self.operation = operation
        self.message = message
        self.stderr = stderr or ""
        self.kind = kind
        self.branch = branch

        error_msg = f"Git operation '{operation}' failed"
        if branch:
            error_msg += f" for branch '{branch}'"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)

    def _matches(self, patterns) -> bool:
        text = f"{self.message or ''}\n{self.stderr}"
        return any(pattern in text for pattern in patterns)

    def is_network_error(self) -> bool:
        return self.kind == self.KIND_NETWORK or self._matches(NETWORK_PATTERNS)

    def is_auth_error(self) -> bool:
        return self._matches(AUTH_PATTERNS)

    def is_merge_conflict(self) -> bool:
        return self._matches(CONFLICT_PATTERNS)

    def is_dirty_working_dir(self) -> bool:
        return self._matches(DIRTY_PATTERNS)

    def to_user_message(self) -> str:
        """Short message suitable for the flash bar."""
        if self.is_network_error():
            return "Network error - check your connection"
        if self.is_auth_error():
            return "Authentication failed - check credentials"
        if self.is_merge_conflict():
            return "Merge conflict - resolve conflicts first"
        if self.is_dirty_working_dir():
            return "Uncommitted changes - commit or stash first"
        return str(self)


class NetworkError(GitCommandFailure):
    """Transient infrastructure failure while talking to a remote."""

    def __init__(self, operation: str, message: Optional[str] = None, stderr: Optional[str] = None):
        super().__init__(operation, message, stderr, kind=GitCommandFailure.KIND_NETWORK)


class PrSourceError(WatchtowerError):
    """Exception raised when a code-review platform could not be queried."""

    platform = "PR source"

    def __init__(self, operation: str, message: Optional[str] = None):
        self.operation = operation
        self.message = message

        error_msg = f"{self.platform} operation '{operation}' failed"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)


class GitHubAPIError(PrSourceError):
    """Exception raised for errors in GitHub API operations."""

    platform = "GitHub API"


class GitLabCLIError(PrSourceError):
    """Exception raised when the ``glab`` CLI fails or returns garbage."""

    platform = "GitLab CLI"


def is_retryable(error: BaseException) -> bool:
    """Return True for failures worth another attempt (network hiccups, timeouts)."""
    if isinstance(error, OperationTimeoutError):
        return True
    if isinstance(error, GitCommandFailure):
        return error.is_network_error()
    return False


def to_user_message(error: BaseException) -> str:
    """Render any exception as a one-line message for the UI."""
    if isinstance(error, GitCommandFailure):
        return error.to_user_message()
    return str(error) or error.__class__.__name__
