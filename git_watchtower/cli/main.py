"""Command-line entry point for git-watchtower"""
import sys
from typing import List, Optional

import git
from rich.console import Console

from git_watchtower.cli.args import config_from_args, parse_args
from git_watchtower.exceptions import ConfigError
from git_watchtower.logging_config import get_logger, setup_logging

console = Console(stderr=True)
logger = get_logger(__name__)


def find_repo_root(path: str) -> str:
    """Resolve the working tree root containing ``path``."""
    repo = git.Repo(path, search_parent_directories=True)
    if repo.working_tree_dir is None:
        raise git.exc.InvalidGitRepositoryError(path)
    return str(repo.working_tree_dir)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    parsed_args = parse_args(argv)

    try:
        config = config_from_args(parsed_args)
        setup_logging(verbose=config.verbose, debug=config.debug, tui_mode=True)

        if config.debug:
            console.print("[yellow]Debug mode enabled[/yellow]")
            console.print("[yellow]Configuration:[/yellow]")
            for key, value in config.to_dict().items():
                if key == "github_token" and value:
                    value = "***"
                console.print(f"  {key}: {value}")

        repo_path = find_repo_root(parsed_args.path)
        logger.info(f"Watching {repo_path}")

        # Imported late so --help and --version stay fast
        from git_watchtower.core import Watchtower
        from git_watchtower.tui import WatchtowerApp

        watchtower = Watchtower(repo_path, config)
        try:
            WatchtowerApp(watchtower).run()
        finally:
            watchtower.close()
        return 0

    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 2
    except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError):
        console.print(f"[red]Error: not a git repository: {parsed_args.path}[/red]")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        return 1
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if parsed_args.debug:
            console.print_exception()
        return 1


if __name__ == "__main__":
    sys.exit(main())
