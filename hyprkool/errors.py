"""
Error taxonomy for the hyprkool daemon.

Errors fall into four groups:
- session-fatal: the daemon cannot continue (missing session, closed
  compositor event feed, socket cannot be claimed)
- command-local: a single IPC command failed; reported to the client as
  IpcErr and the daemon continues
- best-effort: a compositor query or dispatch failed; logged and retried on
  the next event or tick
- protocol: a malformed line on the daemon socket; that connection is closed
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """
    Error codes for hyprkool.

    Custom codes:
    - 1000-1099: Session errors (fatal)
    - 1100-1199: Command errors
    - 1200-1299: Compositor IPC errors
    - 1300-1399: Protocol errors
    - 1400-1499: Configuration errors
    """

    # Session errors (1000-1099)
    SESSION_NOT_FOUND = 1000
    EVENT_FEED_CLOSED = 1001
    SOCKET_BIND_FAILED = 1002

    # Command errors (1100-1199)
    COMMAND_FAILED = 1100
    NOT_IN_ACTIVITY = 1101
    WORKSPACE_NOT_FOUND = 1102
    MONITOR_NOT_FOUND = 1103
    NO_ACTIVE_WINDOW = 1104
    NAMED_FOCUS_NOT_FOUND = 1105
    INVALID_NAME = 1106

    # Compositor IPC errors (1200-1299)
    HYPRLAND_IPC_FAILED = 1200
    HYPRLAND_DISPATCH_FAILED = 1201

    # Protocol errors (1300-1399)
    PARSE_ERROR = 1300
    UNEXPECTED_MESSAGE = 1301
    DAEMON_UNAVAILABLE = 1302

    # Configuration errors (1400-1499)
    CONFIG_INVALID = 1400


class HyprkoolError(Exception):
    """Base exception for all hyprkool errors."""

    default_code = ErrorCode.COMMAND_FAILED

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        suggestion: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize error.

        Args:
            message: Human-readable error message
            code: Error code from ErrorCode enum (defaults per subclass)
            suggestion: Suggested recovery action
            context: Additional context for debugging
        """
        self.code = code or self.default_code
        self.message = message
        self.suggestion = suggestion
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for logging and diagnostics.

        Returns:
            Error dictionary with code, message, suggestion, and context
        """
        result: Dict[str, Any] = {
            "code": self.code.value,
            "message": self.message
        }

        if self.suggestion:
            result["suggestion"] = self.suggestion

        if self.context:
            result["context"] = self.context

        return result


class SessionNotFoundError(HyprkoolError):
    """No Hyprland session could be found in the environment."""

    default_code = ErrorCode.SESSION_NOT_FOUND


class EventFeedClosedError(HyprkoolError):
    """The compositor event socket closed; the daemon cannot continue."""

    default_code = ErrorCode.EVENT_FEED_CLOSED


class SocketBindError(HyprkoolError):
    """The daemon socket could not be claimed."""

    default_code = ErrorCode.SOCKET_BIND_FAILED


class CommandError(HyprkoolError):
    """A single IPC command could not be executed."""

    default_code = ErrorCode.COMMAND_FAILED


class HyprlandError(HyprkoolError):
    """A compositor query or dispatch failed."""

    default_code = ErrorCode.HYPRLAND_IPC_FAILED


class ProtocolError(HyprkoolError):
    """A line on the daemon socket could not be decoded."""

    default_code = ErrorCode.PARSE_ERROR


class DaemonUnavailableError(HyprkoolError):
    """No daemon answered on the socket in time."""

    default_code = ErrorCode.DAEMON_UNAVAILABLE


class ConfigError(HyprkoolError):
    """The configuration file is invalid."""

    default_code = ErrorCode.CONFIG_INVALID
