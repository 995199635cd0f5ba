"""Version information for git-watchtower."""

__version__ = "0.4.0"
