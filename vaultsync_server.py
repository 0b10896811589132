#!/usr/bin/env python3
"""
VaultSync MCP Server

Keeps a notes vault synchronized with a git remote and exposes sync,
pull, commit-and-push and status tools over stdio.
"""

from vaultsync.server import main


if __name__ == "__main__":
    main()
