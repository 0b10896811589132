"""Structured error payloads returned by VaultSync MCP tools."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Tuple

from .git_sync.operations import CommandError


class ErrorCategory(Enum):
    """Where a tool failure came from."""
    GIT_SYNC = "git_sync"
    CONFIGURATION = "configuration"


@dataclass
class ErrorResponse:
    """Error payload handed back to MCP clients instead of a traceback."""
    error_code: str
    message: str
    category: ErrorCategory
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": False,
            "error_code": self.error_code,
            "message": self.message,
            "category": self.category.value,
            "timestamp": self.timestamp
        }
        if self.context:
            result["context"] = dict(self.context)
        return result


def _classify_sync_error(error: Exception) -> Tuple[str, str]:
    if isinstance(error, CommandError):
        if error.timed_out:
            return "GIT_TIMEOUT", "Git command timed out"
        return "GIT_COMMAND_FAILED", error.summary()
    if isinstance(error, PermissionError):
        return "GIT_PERMISSION_ERROR", "Permission denied for Git operation"
    return "GIT_GENERAL_ERROR", f"Git operation failed: {error}"


class ErrorHandler:
    """Turns exceptions raised inside tools into short structured payloads."""

    def __init__(self):
        self.logger = logging.getLogger('vaultsync.error_handler')

    def handle_sync_error(self, error: Exception, context: Dict[str, Any] = None) -> ErrorResponse:
        """Handle errors raised by git or the sync engine."""
        error_code, message = _classify_sync_error(error)
        self.logger.warning(
            f"Git sync error: {message}",
            extra={'operation': 'git_sync_error', 'error_code': error_code}
        )
        return ErrorResponse(error_code, message, ErrorCategory.GIT_SYNC, context or {})

    def handle_configuration_error(self, error: Exception, context: Dict[str, Any] = None) -> ErrorResponse:
        """Handle rejected settings changes."""
        if isinstance(error, TypeError):
            error_code, message = "CONFIG_UNKNOWN_SETTING", f"Unknown setting: {error}"
        else:
            error_code, message = "CONFIG_INVALID_VALUE", f"Invalid configuration: {error}"

        self.logger.warning(
            f"Configuration error: {message}",
            extra={'operation': 'configuration_error', 'error_code': error_code}
        )
        return ErrorResponse(error_code, message, ErrorCategory.CONFIGURATION, context or {})

    def create_success_response(self, operation: str, data: Dict[str, Any], context: Dict[str, Any] = None) -> Dict[str, Any]:
        """Create a standardized success response for tool calls."""
        response = {
            "success": True,
            "operation": operation,
            "timestamp": datetime.now().isoformat(),
            "data": data
        }
        if context:
            response["context"] = context
        return response


error_handler = ErrorHandler()
