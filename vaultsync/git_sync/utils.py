"""Result types shared by the repository reader and the sync manager."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .error_types import PushErrorCategory


class Outcome(Enum):
    """How an operation ended."""
    SUCCESS = "success"
    NO_OP = "no_op"          # Nothing needed doing; still a success
    FAILURE = "failure"
    CONFLICT = "conflict"
    BUSY = "busy"            # Rejected because another operation holds the lock

    @property
    def is_success(self) -> bool:
        return self in (Outcome.SUCCESS, Outcome.NO_OP)


@dataclass
class CommitResult:
    """Result of a commit attempt."""
    outcome: Outcome
    message: str

    @property
    def success(self) -> bool:
        return self.outcome.is_success


@dataclass
class PullResult:
    """Result of integrating remote changes."""
    outcome: Outcome
    message: str
    files: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.outcome.is_success

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "outcome": self.outcome.value,
            "message": self.message,
            "files": list(self.files),
            "conflicts": list(self.conflicts),
        }


@dataclass
class PushResult:
    """Result of publishing local commits."""
    outcome: Outcome
    message: str
    pushed: int = 0
    error_category: Optional["PushErrorCategory"] = None

    @property
    def success(self) -> bool:
        return self.outcome.is_success

    def to_dict(self) -> dict:
        result = {
            "success": self.success,
            "outcome": self.outcome.value,
            "message": self.message,
            "pushed": self.pushed,
        }
        if self.error_category is not None:
            result["error_category"] = self.error_category.value
        return result


@dataclass
class SyncResult:
    """Verdict of one full sync."""
    outcome: Outcome
    message: str
    pulled: int = 0
    pushed: int = 0
    conflicts: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.outcome.is_success

    def to_dict(self) -> dict:
        result = {
            "success": self.success,
            "outcome": self.outcome.value,
            "message": self.message,
            "pulled": self.pulled,
            "pushed": self.pushed,
        }
        if self.conflicts:
            result["conflicts"] = list(self.conflicts)
        return result


def create_sync_result(
    outcome: Outcome,
    message: str,
    pulled: int = 0,
    pushed: int = 0,
    conflicts: Optional[List[str]] = None
) -> SyncResult:
    """
    Helper function to create SyncResult instances.

    Args:
        outcome: How the sync ended
        message: Short, user-facing description
        pulled: Number of files changed by the pull step
        pushed: Number of commits published by the push step
        conflicts: Conflicted paths when the sync was blocked

    Returns:
        SyncResult instance with all fields populated
    """
    return SyncResult(
        outcome=outcome,
        message=message,
        pulled=pulled,
        pushed=pushed,
        conflicts=list(conflicts or [])
    )
