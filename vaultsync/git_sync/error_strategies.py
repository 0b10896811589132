"""User-facing resolutions and detection patterns for push failures."""

from typing import Dict, List, Tuple
from .error_types import PushErrorCategory, ErrorResolution


def build_error_resolutions() -> Dict[PushErrorCategory, ErrorResolution]:
    """Build the resolution shown for each push failure category."""
    return {
        PushErrorCategory.NETWORK: ErrorResolution(
            category=PushErrorCategory.NETWORK,
            user_message="Network error: could not resolve the remote host",
            resolution_steps=[
                "Check your internet connection",
                "Verify the remote URL host name is spelled correctly",
            ]
        ),

        PushErrorCategory.HTTPS_AUTH: ErrorResolution(
            category=PushErrorCategory.HTTPS_AUTH,
            user_message=(
                "Authentication failed: HTTPS pushes need stored credentials. "
                "Run 'git config --global credential.helper store', then push once "
                "manually and enter your username and personal access token"
            ),
            resolution_steps=[
                "Run 'git config --global credential.helper store'",
                "Run 'git push' once in the vault and enter your username and token",
                "Make sure the token has permission to write to the repository",
            ]
        ),

        PushErrorCategory.SSH_AUTH: ErrorResolution(
            category=PushErrorCategory.SSH_AUTH,
            user_message="SSH authentication failed: check that your SSH key is added to your Git host",
            resolution_steps=[
                "Run 'ssh -T git@<host>' to test the key",
                "Add the public key to your account on the Git host",
            ]
        ),

        PushErrorCategory.PERMISSION: ErrorResolution(
            category=PushErrorCategory.PERMISSION,
            user_message="Push permission denied: check that you have write access to the repository",
            resolution_steps=[
                "Ask the repository owner for write access",
                "Verify the remote points at your own repository",
            ]
        ),

        PushErrorCategory.UNKNOWN: ErrorResolution(
            category=PushErrorCategory.UNKNOWN,
            user_message="Push failed: check your network connection and credentials",
            resolution_steps=[
                "Run 'git push' in the vault to see the full error",
            ]
        ),
    }


def build_error_patterns() -> List[Tuple[Tuple[str, ...], PushErrorCategory]]:
    """
    Build the ordered mapping of stderr patterns to categories.

    Every substring in a pattern tuple must be present. The first matching
    entry wins, so each stderr maps to exactly one category. Host resolution
    comes first because git reports it as "unable to access".
    """
    return [
        (("Could not resolve host",), PushErrorCategory.NETWORK),
        (("Authentication failed",), PushErrorCategory.HTTPS_AUTH),
        (("403",), PushErrorCategory.HTTPS_AUTH),
        (("fatal: unable to access",), PushErrorCategory.HTTPS_AUTH),
        (("Permission denied (publickey)",), PushErrorCategory.SSH_AUTH),
        (("Permission to", "denied"), PushErrorCategory.PERMISSION),
        (("fatal:",), PushErrorCategory.FATAL),
    ]
