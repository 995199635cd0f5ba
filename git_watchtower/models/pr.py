"""Pull request / merge request status models"""
from enum import Enum
from dataclasses import dataclass


class PrState(Enum):
    """Review state of a pull request, shared by GitHub and GitLab."""
    OPEN = "OPEN"
    MERGED = "MERGED"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class PrStatus:
    """Uniform per-branch PR/CI record."""
    number: int
    title: str
    state: PrState
    approved: bool = False
    checks_pass: bool = False
    checks_fail: bool = False
    checks_count: int = 0

    @property
    def is_merged(self) -> bool:
        return self.state is PrState.MERGED
