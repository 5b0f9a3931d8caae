"""
Conversation data model.

ConversationItem is the store's unit of dialogue; ItemDelta is one incremental
update to it, produced by the realtime connection from server events.
TrackOffset reports where playback stood when it was interrupted.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional

from realtime_console.config.constants import BYTES_PER_SAMPLE, DEFAULT_SAMPLE_RATE


class ItemRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class ItemType(str, Enum):
    MESSAGE = "message"
    FUNCTION_CALL = "function_call"
    FUNCTION_CALL_OUTPUT = "function_call_output"


class ItemStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass
class ToolCall:
    """Name, arguments and correlation id of a function_call item."""

    name: str = ""
    arguments: str = ""
    call_id: str = ""


@dataclass
class ItemDelta:
    """One incremental update to a conversation item.

    ``text``/``transcript``/``arguments`` replace the current value;
    the ``*_delta`` variants append to it. ``audio`` is always appended.
    """

    role: Optional[ItemRole] = None
    type: Optional[ItemType] = None
    status: Optional[ItemStatus] = None
    audio: Optional[bytes] = None
    text: Optional[str] = None
    text_delta: Optional[str] = None
    transcript: Optional[str] = None
    transcript_delta: Optional[str] = None
    tool_name: Optional[str] = None
    call_id: Optional[str] = None
    arguments: Optional[str] = None
    arguments_delta: Optional[str] = None
    output: Optional[str] = None

    @property
    def is_completion(self) -> bool:
        return self.status is ItemStatus.COMPLETED


@dataclass
class ConversationItem:
    """A single message, tool call or tool result in the conversation."""

    id: str
    role: ItemRole = ItemRole.ASSISTANT
    type: ItemType = ItemType.MESSAGE
    status: ItemStatus = ItemStatus.IN_PROGRESS
    text: str = ""
    transcript: str = ""
    audio: bytearray = field(default_factory=bytearray)
    tool: Optional[ToolCall] = None
    output: Optional[str] = None
    # Samples actually heard before a barge-in; None when never truncated
    truncated_at: Optional[int] = None
    # WAV rendering of the final audio, set when the item completes
    audio_file: Optional[bytes] = None

    @property
    def is_completed(self) -> bool:
        return self.status is ItemStatus.COMPLETED

    @property
    def sample_count(self) -> int:
        return len(self.audio) // BYTES_PER_SAMPLE

    @property
    def heard_audio(self) -> bytes:
        """Audio up to the truncation point, or all of it when not truncated."""
        if self.truncated_at is None:
            return bytes(self.audio)
        return bytes(self.audio[: self.truncated_at * BYTES_PER_SAMPLE])

    def snapshot(self) -> "ConversationItem":
        """Independent copy; mutating it never touches the store."""
        return replace(
            self,
            audio=bytearray(self.audio),
            tool=replace(self.tool) if self.tool else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "type": self.type.value,
            "status": self.status.value,
            "text": self.text,
            "transcript": self.transcript,
            "audio_bytes": len(self.audio),
            "tool": (
                {
                    "name": self.tool.name,
                    "arguments": self.tool.arguments,
                    "call_id": self.tool.call_id,
                }
                if self.tool
                else None
            ),
            "output": self.output,
            "truncated_at": self.truncated_at,
        }


@dataclass(frozen=True)
class TrackOffset:
    """Which playback track was cut, and how many of its samples were emitted."""

    track_id: str
    sample_offset: int
    sample_rate: int = DEFAULT_SAMPLE_RATE

    @property
    def current_time(self) -> float:
        return self.sample_offset / self.sample_rate

    @property
    def audio_end_ms(self) -> int:
        return int(self.sample_offset * 1000 // self.sample_rate)
