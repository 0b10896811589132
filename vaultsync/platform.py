"""Host platform detection and git executable resolution for vaultsync."""

import os
import platform
import shutil
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Union


class PlatformType(Enum):
    """Supported platform types."""
    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    UNKNOWN = "unknown"


_SYSTEM_NAMES = {
    "windows": PlatformType.WINDOWS,
    "darwin": PlatformType.MACOS,
    "linux": PlatformType.LINUX,
}


@dataclass(frozen=True)
class PlatformInfo:
    """The parts of the host the sync engine cares about."""
    platform_type: PlatformType
    release: str

    @classmethod
    def detect(cls) -> "PlatformInfo":
        system = platform.system().lower()
        return cls(_SYSTEM_NAMES.get(system, PlatformType.UNKNOWN), platform.release())

    @property
    def is_windows(self) -> bool:
        return self.platform_type == PlatformType.WINDOWS

    def describe(self) -> str:
        """Short host summary for the startup log."""
        return f"{self.platform_type.value} {self.release}".strip()


@lru_cache(maxsize=None)
def get_platform_info() -> PlatformInfo:
    """Detect the host once per process."""
    return PlatformInfo.detect()


def normalize_path(path: Union[str, Path]) -> Path:
    """Expand `~` and resolve to an absolute vault path."""
    return Path(path).expanduser().resolve()


def get_git_executable() -> str:
    """
    Default git executable for the current platform.

    Honours GitPython's GIT_PYTHON_GIT_EXECUTABLE override, otherwise
    resolves `git` (`git.exe` on Windows) through the search path and falls
    back to the bare name.
    """
    override = os.getenv("GIT_PYTHON_GIT_EXECUTABLE")
    if override:
        return override

    name = "git.exe" if get_platform_info().is_windows else "git"
    return shutil.which(name) or name


def get_platform_specific_defaults() -> Dict[str, Any]:
    """Defaults used by load_configuration when no environment override is set."""
    return {
        'vault_dir': Path.cwd(),
        'log_level': "INFO",
        'git_path': get_git_executable(),
        'command_timeout': 120.0,
        'max_output_bytes': 50 * 1024 * 1024,
        'sync_interval': 10,
    }
