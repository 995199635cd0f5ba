"""Configuration handling for git-watchtower"""

from dataclasses import dataclass, fields
from typing import Optional

from git_watchtower.exceptions import ConfigError

# Limits for user-tunable values
POLL_INTERVAL_LIMITS = (1000, 300000)  # 1s to 5min, in ms
VISIBLE_BRANCHES_LIMITS = (1, 50)


@dataclass
class Config:
    """Configuration for git-watchtower with validation."""

    # Git
    remote_name: str = "origin"
    poll_interval: int = 5000  # Base poll interval in milliseconds
    fetch_timeout: float = 60.0  # Seconds allowed for a fetch + branch listing
    git_timeout: float = 30.0  # Seconds allowed for local git commands
    retry_attempts: int = 3
    retry_base_delay: float = 1.0  # Seconds, doubled per retry
    auto_pull: bool = True  # Pull the current branch when its remote moves

    # Display
    max_log_entries: int = 10
    max_server_log_lines: int = 500
    visible_branches: int = 7
    sparkline_refresh: float = 300.0  # Seconds before activity sparklines are recomputed
    sparkline_branches: int = 20  # Branches, newest first, that get a sparkline

    # Input pacing
    refresh_throttle: float = 2.0  # Seconds between manual refreshes
    search_debounce: float = 0.3  # Seconds of quiet before a search applies

    # GitHub integration
    github_enabled: bool = True
    github_token: Optional[str] = None
    max_prs_to_fetch: int = 100

    # GitLab integration, through the glab CLI
    gitlab_enabled: bool = True

    verbose: bool = False
    debug: bool = False

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate_remote_name()
        self._validate_poll_interval()
        self._validate_timeouts()
        self._validate_retry()
        self._validate_log_sizes()
        self._validate_visible_branches()
        self._validate_sparklines()
        self._validate_pacing()
        self._validate_max_prs()

    def _validate_remote_name(self):
        """Validate remote_name is not empty."""
        if not self.remote_name or not self.remote_name.strip():
            raise ConfigError("remote_name", "cannot be empty")
        self.remote_name = self.remote_name.strip()

    def _validate_poll_interval(self):
        """Validate poll_interval is within limits and store it as an int."""
        low, high = POLL_INTERVAL_LIMITS
        try:
            value = int(round(float(self.poll_interval)))
        except (TypeError, ValueError):
            raise ConfigError("poll_interval", f"must be a number, got {self.poll_interval!r}")
        if not low <= value <= high:
            raise ConfigError("poll_interval", f"must be between {low}ms and {high}ms, got {value}")
        self.poll_interval = value

    def _validate_timeouts(self):
        """Validate fetch_timeout and git_timeout are positive."""
        if self.fetch_timeout <= 0:
            raise ConfigError("fetch_timeout", f"must be positive, got {self.fetch_timeout}")
        if self.git_timeout <= 0:
            raise ConfigError("git_timeout", f"must be positive, got {self.git_timeout}")

    def _validate_retry(self):
        """Validate retry settings."""
        if self.retry_attempts < 1:
            raise ConfigError("retry_attempts", f"must be at least 1, got {self.retry_attempts}")
        if self.retry_base_delay < 0:
            raise ConfigError(
                "retry_base_delay", f"cannot be negative, got {self.retry_base_delay}"
            )

    def _validate_log_sizes(self):
        """Validate ring buffer sizes."""
        if self.max_log_entries < 1:
            raise ConfigError("max_log_entries", f"must be positive, got {self.max_log_entries}")
        if self.max_server_log_lines < 1:
            raise ConfigError(
                "max_server_log_lines", f"must be positive, got {self.max_server_log_lines}"
            )

    def _validate_visible_branches(self):
        """Validate visible_branches is within limits."""
        low, high = VISIBLE_BRANCHES_LIMITS
        if not isinstance(self.visible_branches, int) or not low <= self.visible_branches <= high:
            raise ConfigError(
                "visible_branches", f"must be an integer between {low} and {high}"
            )

    def _validate_sparklines(self):
        """Validate the activity sparkline cache settings."""
        if self.sparkline_refresh < 0:
            raise ConfigError("sparkline_refresh", "cannot be negative")
        if self.sparkline_branches < 0:
            raise ConfigError(
                "sparkline_branches", f"cannot be negative, got {self.sparkline_branches}"
            )

    def _validate_pacing(self):
        """Validate debounce and throttle windows."""
        if self.refresh_throttle < 0:
            raise ConfigError("refresh_throttle", "cannot be negative")
        if self.search_debounce < 0:
            raise ConfigError("search_debounce", "cannot be negative")

    def _validate_max_prs(self):
        """Validate max_prs_to_fetch is positive."""
        if self.max_prs_to_fetch <= 0:
            raise ConfigError(
                "max_prs_to_fetch", f"must be positive, got {self.max_prs_to_fetch}"
            )

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def get(self, key: str, default=None):
        """Get config value by key, dict style."""
        return getattr(self, key, default)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "Config":
        """Create Config from dictionary, ignoring unknown keys."""
        known_fields = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in config_dict.items() if k in known_fields}
        return cls(**filtered)
