"""
VaultSync - keeps a notes vault synchronized with a git remote.

This package runs pull, commit and push cycles against the vault's
repository, on demand or on a timer, and exposes them through the
Model Context Protocol (MCP).
"""

__version__ = "1.0.0"
__author__ = "VaultSync Team"
__description__ = "VaultSync - git-backed synchronization for notes vaults"


def main():
    """Run the MCP server. The server module is imported lazily so the sync engine works without it."""
    from .server import main as server_main
    return server_main()


__all__ = ["main"]
