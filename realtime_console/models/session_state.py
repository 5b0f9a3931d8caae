"""
Session state for the realtime console.

This module holds the controller's lifecycle enums and the SessionConfig it
owns and pushes to the remote side whenever it changes.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from realtime_console.config.constants import (
    DEFAULT_INSTRUCTIONS,
    DEFAULT_TRANSCRIPTION_MODEL,
    DEFAULT_VOICE,
)
from realtime_console.config.models import SessionDefaults
from realtime_console.models.openai_api import SessionConfig as WireSessionConfig


class ConnectionState(Enum):
    """Session connection lifecycle."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class CaptureState(Enum):
    """Capture sub-state while connected."""

    IDLE = "idle"
    CAPTURING = "capturing"


class PlaybackState(Enum):
    """Playback sub-state while connected."""

    IDLE = "idle"
    PLAYING = "playing"
    INTERRUPTED = "interrupted"


class TurnDetection(str, Enum):
    """Who decides that the user has finished speaking."""

    MANUAL = "manual"
    SERVER_DETECTED = "server_detected"

    def to_wire(self) -> Optional[Dict[str, Any]]:
        if self is TurnDetection.SERVER_DETECTED:
            return {"type": "server_vad"}
        return None


@dataclass
class SessionConfig:
    """Session settings owned by the SessionController."""

    instructions: str = DEFAULT_INSTRUCTIONS
    turn_detection: TurnDetection = TurnDetection.MANUAL
    transcription_model: Optional[str] = DEFAULT_TRANSCRIPTION_MODEL
    voice: str = DEFAULT_VOICE
    modalities: List[str] = field(default_factory=lambda: ["text", "audio"])

    @classmethod
    def from_defaults(cls, defaults: SessionDefaults) -> "SessionConfig":
        return cls(
            instructions=defaults.instructions,
            turn_detection=TurnDetection(defaults.turn_detection),
            transcription_model=defaults.transcription_model,
            voice=defaults.voice,
        )

    def copy(self, **changes: Any) -> "SessionConfig":
        return replace(self, modalities=list(self.modalities), **changes)

    def to_wire(self, tools: Optional[List[Dict[str, Any]]] = None) -> WireSessionConfig:
        """Build the ``session.update`` payload for this configuration."""
        transcription = (
            {"model": self.transcription_model} if self.transcription_model else None
        )
        return WireSessionConfig(
            modalities=list(self.modalities),
            instructions=self.instructions,
            voice=self.voice,
            input_audio_format="pcm16",
            output_audio_format="pcm16",
            turn_detection=self.turn_detection.to_wire(),
            input_audio_transcription=transcription,
            tools=tools,
            tool_choice="auto" if tools else None,
        )
