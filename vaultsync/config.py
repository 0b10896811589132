"""Configuration management for vaultsync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

from .platform import get_platform_specific_defaults, get_git_executable, normalize_path

load_dotenv()  # Load .env file if it exists

DEFAULT_COMMIT_MESSAGE = "vault backup: {{date}}"

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass
class Config:
    """Configuration for the sync engine with validation and defaults."""

    # Vault
    vault_dir: Path = field(default_factory=Path.cwd)

    # Synchronization
    auto_sync: bool = False
    sync_interval: int = 10  # minutes
    commit_message: str = DEFAULT_COMMIT_MESSAGE
    auto_pull_on_start: bool = True

    # Git backend
    git_path: str = field(default_factory=get_git_executable)
    command_timeout: float = 120.0
    max_output_bytes: int = 50 * 1024 * 1024

    # Display
    show_status_bar: bool = True
    show_notifications: bool = True

    # Paths hidden from status listings
    exclude_patterns: List[str] = field(default_factory=list)

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.vault_dir = normalize_path(self.vault_dir)

        self.log_level = self.log_level.upper()
        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}. Must be one of {VALID_LOG_LEVELS}")

        if self.sync_interval < 1:
            raise ValueError("sync_interval must be at least 1 minute")

        if self.command_timeout <= 0:
            raise ValueError("command_timeout must be positive")

        if self.max_output_bytes <= 0:
            raise ValueError("max_output_bytes must be positive")

        if not self.git_path:
            raise ValueError("git_path must not be empty")

    @property
    def sync_interval_seconds(self) -> float:
        """Period of the automatic sync trigger."""
        return max(1, self.sync_interval) * 60.0


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_configuration() -> Config:
    """Load configuration from environment variables with platform-specific defaults."""
    try:
        platform_defaults = get_platform_specific_defaults()

        return Config(
            vault_dir=Path(os.getenv("VAULTSYNC_DIR", str(platform_defaults['vault_dir']))),
            auto_sync=_env_flag("VAULTSYNC_AUTO_SYNC", False),
            sync_interval=int(os.getenv("VAULTSYNC_INTERVAL", str(platform_defaults['sync_interval']))),
            commit_message=os.getenv("VAULTSYNC_COMMIT_MESSAGE", DEFAULT_COMMIT_MESSAGE),
            auto_pull_on_start=_env_flag("VAULTSYNC_PULL_ON_START", True),
            git_path=os.getenv("VAULTSYNC_GIT_PATH", platform_defaults['git_path']),
            command_timeout=float(os.getenv("VAULTSYNC_COMMAND_TIMEOUT", str(platform_defaults['command_timeout']))),
            max_output_bytes=int(os.getenv("VAULTSYNC_MAX_OUTPUT_BYTES", str(platform_defaults['max_output_bytes']))),
            show_status_bar=_env_flag("VAULTSYNC_SHOW_STATUS", True),
            show_notifications=_env_flag("VAULTSYNC_NOTIFICATIONS", True),
            exclude_patterns=_env_list("VAULTSYNC_EXCLUDE"),
            log_level=os.getenv("VAULTSYNC_LOG_LEVEL", platform_defaults['log_level']).upper(),
        )
    except (ValueError, TypeError) as e:
        raise ValueError(f"Configuration error: {e}")


def validate_configuration(config: Config) -> List[str]:
    """Validate configuration and return any errors or warnings."""
    errors = []

    if not config.vault_dir.exists():
        errors.append(f"ERROR: Vault directory does not exist: {config.vault_dir}")
    elif not config.vault_dir.is_dir():
        errors.append(f"ERROR: Vault path is not a directory: {config.vault_dir}")
    elif not os.access(config.vault_dir, os.W_OK):
        errors.append(f"ERROR: No write permission for vault directory: {config.vault_dir}")

    if not config.commit_message.strip():
        errors.append("ERROR: Commit message template is empty")

    if config.auto_sync and config.sync_interval < 5:
        errors.append("WARNING: Sync intervals under 5 minutes create many small commits")

    if config.command_timeout < 10:
        errors.append("WARNING: Very short command_timeout may abort network operations")

    return errors
