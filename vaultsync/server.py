"""Main server implementation for the VaultSync MCP server."""

import logging
import sys
from typing import Optional, Tuple

from mcp.server.fastmcp import FastMCP

from . import __version__
from .config import Config, load_configuration, validate_configuration
from .errors import error_handler
from .git_sync import Notifier, StatusLog, SyncManager
from .helpers import should_exclude
from .platform import get_platform_info


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

ENGINE_LOGGERS = [
    'vaultsync.init',
    'vaultsync.server',
    'vaultsync.git_sync',
    'vaultsync.notifications',
    'vaultsync.error_handler'
]


class StructuredFormatter(logging.Formatter):
    """Prefixes records that carry an `operation` extra with its name."""

    def format(self, record):
        if hasattr(record, 'operation'):
            record.msg = f"[{record.operation}] {record.msg}"
        return super().format(record)


def setup_logging(config: Config) -> None:
    """Setup logging for the engine loggers at the configured level."""
    level = getattr(logging, config.log_level)

    # MCP uses stdout for the protocol; logging.basicConfig writes to stderr
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT)

    formatter = StructuredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    for logger_name in ENGINE_LOGGERS:
        logger = logging.getLogger(logger_name)
        logger.setLevel(level)

        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.propagate = False


def register_tools(server: FastMCP, manager: SyncManager, status_log: Optional[StatusLog] = None) -> None:
    """Register MCP tools with the server instance."""
    logger = logging.getLogger('vaultsync.server')

    def context() -> dict:
        return {"vault_dir": str(manager.config.vault_dir)}

    @server.tool()
    def sync() -> dict:
        """
        Synchronize the vault with its remote.

        Pulls remote changes, commits local changes with the configured
        message template and pushes. Stops before touching the remote when
        the vault has unresolved merge conflicts.

        Returns:
            Dictionary with success, outcome, message, and the number of
            files pulled and commits pushed. Conflicted paths are listed
            under "conflicts" when the sync was blocked.
        """
        try:
            return manager.sync().to_dict()
        except Exception as e:
            return error_handler.handle_sync_error(e, context()).to_dict()

    @server.tool()
    def pull() -> dict:
        """
        Pull remote changes into the vault without committing or pushing.

        Uncommitted local edits are stashed during the pull and restored
        afterwards.

        Returns:
            Dictionary with success, outcome, message, the changed files and
            any conflicted files
        """
        try:
            return manager.pull_only().to_dict()
        except Exception as e:
            return error_handler.handle_sync_error(e, context()).to_dict()

    @server.tool()
    def commit_and_push() -> dict:
        """
        Commit all local changes in the vault and push them.

        Returns:
            Dictionary with success, outcome, message and the number of
            commits pushed. Failed pushes carry an error_category such as
            "https_auth" or "ssh_auth".
        """
        try:
            return manager.commit_and_push().to_dict()
        except Exception as e:
            return error_handler.handle_sync_error(e, context()).to_dict()

    @server.tool()
    def git_status() -> dict:
        """
        Report the state of the vault repository.

        Returns:
            Dictionary with git availability, the working tree status (paths
            matching the exclusion patterns are hidden), the current sync
            phase, and the time and verdict of the last sync
        """
        try:
            availability = manager.check_git_status()
            data = {
                "git_available": availability.available,
                "is_repository": availability.is_repo,
                "syncing": manager.is_syncing(),
                "auto_sync": manager.config.auto_sync,
                "sync_interval": manager.config.sync_interval,
                "last_sync_time": manager.last_sync_time.isoformat() if manager.last_sync_time else None,
                "last_sync_result": manager.last_sync_result.to_dict() if manager.last_sync_result else None,
            }
            if availability.error:
                data["error"] = availability.error

            if status_log is not None and status_log.enabled:
                data["phase"] = status_log.current().to_dict()

            if availability.available and availability.is_repo:
                status = manager.get_status().to_dict()
                patterns = manager.config.exclude_patterns
                for key in ("staged", "modified", "untracked"):
                    status[key] = [path for path in status[key] if not should_exclude(path, patterns)]
                data["status"] = status

            return error_handler.create_success_response("git_status", data, context())
        except Exception as e:
            return error_handler.handle_sync_error(e, context()).to_dict()

    @server.tool()
    def init_repository() -> dict:
        """
        Initialize a git repository in the vault directory.

        Returns:
            Success response, or an error payload if git init failed
        """
        try:
            if manager.check_git_status().is_repo:
                return error_handler.create_success_response(
                    "init_repository", {"message": "Vault is already a git repository"}, context()
                )
            manager.init_repo()
            logger.info(f"Initialized repository in {manager.config.vault_dir}")
            return error_handler.create_success_response(
                "init_repository", {"message": "Initialized git repository"}, context()
            )
        except Exception as e:
            return error_handler.handle_sync_error(e, context()).to_dict()

    @server.tool()
    def configure_auto_sync(enabled: bool, interval_minutes: Optional[int] = None) -> dict:
        """
        Turn automatic sync on or off and optionally change its interval.

        Args:
            enabled: Whether the vault syncs automatically
            interval_minutes: Minutes between automatic syncs (at least 1)

        Returns:
            Success response with the effective settings
        """
        changes = {"auto_sync": enabled}
        if interval_minutes is not None:
            changes["sync_interval"] = interval_minutes

        try:
            config = manager.update_settings(**changes)
        except (TypeError, ValueError) as e:
            return error_handler.handle_configuration_error(e, changes).to_dict()

        logger.info(f"Automatic sync {'enabled' if config.auto_sync else 'disabled'} ({config.sync_interval} min)")
        return error_handler.create_success_response(
            "configure_auto_sync",
            {"auto_sync": config.auto_sync, "sync_interval": config.sync_interval}
        )

    init_logger = logging.getLogger('vaultsync.init')
    init_logger.info("MCP tools registered successfully")


def initialize_server() -> Tuple[FastMCP, SyncManager]:
    """Initialize the MCP server and sync engine with stdio transport."""
    server_config = load_configuration()
    validation_issues = validate_configuration(server_config)

    setup_logging(server_config)
    init_logger = logging.getLogger('vaultsync.init')

    for issue in validation_issues:
        if issue.startswith("ERROR:"):
            init_logger.error(issue[7:])  # Remove "ERROR: " prefix
        elif issue.startswith("WARNING:"):
            init_logger.warning(issue[9:])  # Remove "WARNING: " prefix

    error_count = sum(1 for issue in validation_issues if issue.startswith("ERROR:"))
    if error_count > 0:
        init_logger.critical(f"Server startup failed due to {error_count} configuration error(s)")
        sys.exit(1)

    init_logger.info(f"Configuration loaded; vault directory is {server_config.vault_dir}")

    manager = SyncManager(server_config)
    status_log = StatusLog(enabled=server_config.show_status_bar)
    manager.add_status_listener(status_log)
    manager.add_status_listener(Notifier(enabled=server_config.show_notifications))

    server = FastMCP("VaultSync", log_level=server_config.log_level)
    register_tools(server, manager, status_log)

    manager.initialize()
    init_logger.info("VaultSync MCP server initialized successfully")

    return server, manager


def main():
    """Main entry point for the VaultSync server with stdio transport."""
    startup_logger = None
    manager = None

    try:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=DATE_FORMAT)
        startup_logger = logging.getLogger('vaultsync.startup')

        startup_logger.info("=" * 60)
        startup_logger.info("VaultSync MCP Server")
        startup_logger.info(f"Version: {__version__}")
        startup_logger.info("=" * 60)

        python_version = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
        if sys.version_info < (3, 10):
            startup_logger.error(f"Python 3.10+ required, found {python_version}")
            sys.exit(1)

        startup_logger.info(f"Python {python_version} on {get_platform_info().describe()}")

        server, manager = initialize_server()

        startup_logger.info("Starting server with stdio transport")
        server.run(transport="stdio")

    except KeyboardInterrupt:
        if startup_logger:
            startup_logger.info("Server stopped by user (Ctrl+C)")
    except SystemExit:
        raise
    except Exception as e:
        if startup_logger:
            startup_logger.critical(f"Server failed to start: {e}", exc_info=True)
        else:
            print(f"CRITICAL: Server failed to start: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        if manager is not None:
            manager.dispose()


if __name__ == "__main__":
    main()
