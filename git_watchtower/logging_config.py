"""Logging configuration for git-watchtower"""
import logging
import sys
from pathlib import Path

LOG_DIR = Path.home() / '.git-watchtower'
LOG_FILE_NAME = 'git-watchtower.log'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Third-party loggers that flood DEBUG output
QUIET_LOGGERS = ('asyncio', 'github', 'urllib3', 'git.cmd')


class ColoredFormatter(logging.Formatter):
    """Color the level name when stderr is a terminal."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.COLORS.get(record.levelname)
        if color and sys.stderr.isatty():
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def _log_level(verbose: bool, debug: bool) -> int:
    if debug:
        return logging.DEBUG
    if verbose:
        return logging.INFO
    return logging.WARNING


def setup_logging(verbose: bool = False, debug: bool = False, tui_mode: bool = False) -> None:
    """
    Configure logging for the application.

    The dashboard owns the terminal while it runs, so in TUI mode every
    record goes to the log file and nothing is written to stderr.

    Args:
        verbose: If True, show INFO level messages
        debug: If True, show DEBUG level messages and log to file
        tui_mode: If True, log only to file
    """
    level = _log_level(verbose, debug)

    root_logger = logging.getLogger()
    # In TUI mode the file handler alone filters records
    root_logger.setLevel(logging.DEBUG if tui_mode else level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    if tui_mode or debug:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(LOG_DIR / LOG_FILE_NAME, mode='w')  # Overwrite each run
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(file_handler)

    if not tui_mode:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        if debug:
            console_handler.setFormatter(ColoredFormatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
        else:
            console_handler.setFormatter(ColoredFormatter(fmt='[%(name)s] %(message)s'))
        root_logger.addHandler(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for the specified module.

    Args:
        name: Name of the module (typically __name__)

    Returns:
        Logger instance
    """
    # Shorter names read better in the log file
    if name.startswith('git_watchtower.'):
        name = name.replace('git_watchtower.', '', 1)
    if name.startswith('services.'):
        name = name.replace('services.', '', 1)

    return logging.getLogger(name)
