"""
git-watchtower - Live terminal dashboard for a repository's branches
"""

from .__version__ import __version__
from .core import Watchtower
from .cli.main import main

__all__ = ["Watchtower", "main", "__version__"]
