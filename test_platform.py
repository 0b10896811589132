#!/usr/bin/env python3
"""Unit tests for platform detection and git executable defaults."""

import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from vaultsync.platform import (
    PlatformInfo,
    PlatformType,
    get_git_executable,
    get_platform_specific_defaults,
    normalize_path
)


@pytest.mark.parametrize("system, expected", [
    ("Windows", PlatformType.WINDOWS),
    ("Darwin", PlatformType.MACOS),
    ("Linux", PlatformType.LINUX),
    ("Plan9", PlatformType.UNKNOWN),
])
def test_detects_known_systems(system, expected):
    with patch("vaultsync.platform.platform.system", return_value=system):
        assert PlatformInfo.detect().platform_type == expected


def test_windows_flag():
    assert PlatformInfo(PlatformType.WINDOWS, "11").is_windows
    assert not PlatformInfo(PlatformType.LINUX, "6.1").is_windows
    assert PlatformInfo(PlatformType.LINUX, "6.1").describe() == "linux 6.1"


def test_git_executable_override():
    with patch.dict(os.environ, {"GIT_PYTHON_GIT_EXECUTABLE": "/opt/git/bin/git"}):
        assert get_git_executable() == "/opt/git/bin/git"


def test_git_executable_falls_back_to_name():
    env = {key: value for key, value in os.environ.items() if key != "GIT_PYTHON_GIT_EXECUTABLE"}
    with patch.dict(os.environ, env, clear=True), \
            patch("vaultsync.platform.shutil.which", return_value=None), \
            patch("vaultsync.platform.get_platform_info", return_value=PlatformInfo(PlatformType.LINUX, "")):
        assert get_git_executable() == "git"


def test_normalize_path_expands_home():
    assert normalize_path("~") == Path.home().resolve()


def test_defaults():
    defaults = get_platform_specific_defaults()

    assert defaults['command_timeout'] == 120.0
    assert defaults['max_output_bytes'] == 50 * 1024 * 1024
    assert defaults['sync_interval'] == 10


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
