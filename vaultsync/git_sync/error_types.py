"""Error types and categorization for push failures."""

from dataclasses import dataclass
from enum import Enum
from typing import List


class PushErrorCategory(Enum):
    """Causes of a rejected push, each with its own remedy."""
    NETWORK = "network"
    HTTPS_AUTH = "https_auth"
    SSH_AUTH = "ssh_auth"
    PERMISSION = "permission"
    FATAL = "fatal"
    UNKNOWN = "unknown"


@dataclass
class ErrorResolution:
    """How to tell the user about a specific push failure."""
    category: PushErrorCategory
    user_message: str
    resolution_steps: List[str]
