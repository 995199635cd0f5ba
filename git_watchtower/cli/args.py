"""Command-line argument parsing for git-watchtower."""

import argparse
from typing import List, Optional

from git_watchtower.__version__ import __version__
from git_watchtower.config import Config

_DEFAULTS = Config()


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="git-watchtower",
        description="Watch a git repository's branches live in the terminal",
        epilog="PR status: set GITHUB_TOKEN to show pull request state for GitHub remotes. "
        "Get a token at https://github.com/settings/tokens (scopes: repo or public_repo). "
        "GitLab remotes use the glab CLI and its login.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show verbose output")
    parser.add_argument("--version", action="version", version=f"git-watchtower {__version__}")
    parser.add_argument(
        "--debug", action="store_true", help="Show debug information for troubleshooting"
    )
    parser.add_argument(
        "-r", "--remote", default=_DEFAULTS.remote_name, help="Git remote name (default: origin)"
    )
    parser.add_argument(
        "--poll-interval",
        type=int,
        default=_DEFAULTS.poll_interval,
        metavar="MS",
        help="Git polling interval in ms (default: 5000)",
    )
    parser.add_argument(
        "--fetch-timeout",
        type=float,
        default=_DEFAULTS.fetch_timeout,
        metavar="SECONDS",
        help="Give up on a fetch after this many seconds (default: 60)",
    )
    parser.add_argument(
        "--max-log-entries",
        type=int,
        default=_DEFAULTS.max_log_entries,
        metavar="N",
        help="Activity log entries to keep (default: 10)",
    )
    parser.add_argument(
        "--visible-branches",
        type=int,
        default=_DEFAULTS.visible_branches,
        metavar="N",
        help="Number of branches to display (default: 7)",
    )
    parser.add_argument(
        "--no-github", action="store_true", help="Disable GitHub pull request status"
    )
    parser.add_argument(
        "--no-gitlab", action="store_true", help="Disable GitLab merge request status (glab)"
    )
    parser.add_argument(
        "--no-auto-pull",
        action="store_true",
        help="Do not pull the current branch automatically when its remote moves",
    )
    parser.add_argument(
        "path", nargs="?", default=".", help="Repository to watch (default: current directory)"
    )
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)


def config_from_args(parsed_args: argparse.Namespace) -> Config:
    """Build a validated Config from parsed arguments."""
    return Config(
        remote_name=parsed_args.remote,
        poll_interval=parsed_args.poll_interval,
        fetch_timeout=parsed_args.fetch_timeout,
        max_log_entries=parsed_args.max_log_entries,
        visible_branches=parsed_args.visible_branches,
        github_enabled=not parsed_args.no_github,
        gitlab_enabled=not parsed_args.no_gitlab,
        auto_pull=not parsed_args.no_auto_pull,
        verbose=parsed_args.verbose,
        debug=parsed_args.debug,
    )
