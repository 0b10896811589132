"""Repository information and state data structures."""

from dataclasses import dataclass, field
from typing import List, Optional

DETACHED_BRANCH = "(detached)"


@dataclass
class RepositoryStatus:
    """Snapshot of the working tree at one instant."""
    branch: str
    ahead: int = 0
    behind: int = 0
    staged: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    untracked: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not (self.staged or self.modified or self.untracked or self.conflicts)

    @property
    def detached(self) -> bool:
        return self.branch == DETACHED_BRANCH

    def to_dict(self) -> dict:
        return {
            "branch": self.branch,
            "ahead": self.ahead,
            "behind": self.behind,
            "staged": list(self.staged),
            "modified": list(self.modified),
            "untracked": list(self.untracked),
            "conflicts": list(self.conflicts),
            "clean": self.clean,
        }


@dataclass
class GitAvailability:
    """Whether git can run and the vault is a repository."""
    available: bool
    is_repo: bool
    error: Optional[str] = None
