"""Data models for git-watchtower."""

from .branch import Branch
from .pr import PrState, PrStatus

__all__ = ["Branch", "PrState", "PrStatus"]
