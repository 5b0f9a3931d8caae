"""
Realtime Console: a terminal client for voice conversations with the OpenAI
Realtime API.
"""

from realtime_console.exceptions import (
    ConnectionError,
    DeviceUnavailable,
    DuplicateToolError,
    InvalidTurnModeError,
    RealtimeConsoleError,
    SchemaValidationError,
    ToolHandlerError,
)
from realtime_console.session_controller import SessionController

__version__ = "0.1.0"

__all__ = [
    "ConnectionError",
    "DeviceUnavailable",
    "DuplicateToolError",
    "InvalidTurnModeError",
    "RealtimeConsoleError",
    "SchemaValidationError",
    "SessionController",
    "ToolHandlerError",
]
