"""
Exception taxonomy for the realtime console.

Every error raised by the session core derives from RealtimeConsoleError so
callers can catch the whole family. ConnectionError also subclasses the
builtin ConnectionError, so generic network handlers still see it.
"""

import builtins
from typing import Any, Dict, List, Optional


class RealtimeConsoleError(Exception):
    """Base class for all realtime console errors."""


class ConnectionError(RealtimeConsoleError, builtins.ConnectionError):
    """Connect/disconnect misuse, or a device/network failure while connecting.

    Non-fatal: the session is left DISCONNECTED and the caller may retry.
    """


class DeviceUnavailable(RealtimeConsoleError):
    """A capture or playback device is missing or could not be opened."""

    def __init__(self, kind: str, reason: str = ""):
        self.kind = kind
        self.reason = reason
        message = f"No usable {kind} device"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class DuplicateToolError(RealtimeConsoleError):
    """A tool with the same name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class SchemaValidationError(RealtimeConsoleError):
    """Tool-call arguments do not match the tool's parameter schema."""

    def __init__(self, tool_name: str, problems: List[str]):
        self.tool_name = tool_name
        self.problems = list(problems)
        super().__init__(f"Invalid arguments for '{tool_name}': " + "; ".join(self.problems))

    def to_payload(self) -> Dict[str, Any]:
        return {
            "error": {
                "type": type(self).__name__,
                "message": str(self),
                "problems": self.problems,
            }
        }


class ToolHandlerError(RealtimeConsoleError):
    """A tool handler raised, or returned something that is not JSON-serializable."""

    def __init__(self, tool_name: str, cause: Optional[BaseException] = None, message: str = ""):
        self.tool_name = tool_name
        self.cause = cause
        detail = message or (f"{type(cause).__name__}: {cause}" if cause else "handler failed")
        super().__init__(f"Tool '{tool_name}' failed: {detail}")

    def to_payload(self) -> Dict[str, Any]:
        return {
            "error": {
                "type": type(self).__name__,
                "message": str(self),
            }
        }


class InvalidTurnModeError(RealtimeConsoleError):
    """A manual-capture operation was requested outside manual turn detection."""
