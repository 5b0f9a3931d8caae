"""
Pydantic models for OpenAI Realtime API message structures.

This module provides type-safe models for the client events the console sends
to the Realtime API, and the event-type enumerations used to route the server
events it receives.

Messages are exchanged over a WebSocket as JSON events, each carrying a
``type`` discriminant. Outbound events are built from the models below and
serialized with ``model_dump(exclude_none=True)``; inbound events are kept as
plain dictionaries and dispatched on their ``type``.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    """Role of a participant in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


# Session-related models


class SessionConfig(BaseModel):
    """Configuration for a Realtime API Session.

    This is the wire shape of ``session.update``. Only the fields that are set
    are sent, so a partial update leaves the other server-side settings alone.
    """

    modalities: Optional[List[str]] = None  # e.g. ["text", "audio"]
    instructions: Optional[str] = None
    voice: Optional[str] = None
    input_audio_format: Optional[str] = None  # "pcm16"
    output_audio_format: Optional[str] = None  # "pcm16"
    # ``None`` on the wire disables server VAD, so this field is always sent
    turn_detection: Optional[Dict[str, Any]] = None  # {"type": "server_vad"}
    tools: Optional[List[Dict[str, Any]]] = None
    tool_choice: Optional[Literal["auto", "none", "required"]] = None
    temperature: Optional[float] = None
    max_response_output_tokens: Optional[Union[int, str]] = None
    input_audio_transcription: Optional[Dict[str, Any]] = None

    def to_wire(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_none=True)
        data["turn_detection"] = self.turn_detection
        return data


# Conversation-related models


class ConversationItemContentParam(BaseModel):
    """Parameter for creating content in a conversation item."""

    type: str  # "input_text", "input_audio", "text"
    text: Optional[str] = None
    audio: Optional[str] = None  # Base64 encoded audio
    transcript: Optional[str] = None


class ConversationItemParam(BaseModel):
    """Parameter for creating a conversation item."""

    id: Optional[str] = None
    type: str  # "message", "function_call", "function_call_output"
    role: Optional[MessageRole] = None
    content: Optional[List[ConversationItemContentParam]] = None
    call_id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None
    output: Optional[str] = None


# Event models for client-server communication


class ClientEventType(str, Enum):
    """Types of events that can be sent to the server."""

    SESSION_UPDATE = "session.update"
    INPUT_AUDIO_BUFFER_APPEND = "input_audio_buffer.append"
    INPUT_AUDIO_BUFFER_COMMIT = "input_audio_buffer.commit"
    INPUT_AUDIO_BUFFER_CLEAR = "input_audio_buffer.clear"
    CONVERSATION_ITEM_CREATE = "conversation.item.create"
    CONVERSATION_ITEM_TRUNCATE = "conversation.item.truncate"
    CONVERSATION_ITEM_DELETE = "conversation.item.delete"
    RESPONSE_CREATE = "response.create"
    RESPONSE_CANCEL = "response.cancel"


class ServerEventType(str, Enum):
    """Types of events received from the server."""

    ERROR = "error"
    SESSION_CREATED = "session.created"
    SESSION_UPDATED = "session.updated"
    CONVERSATION_CREATED = "conversation.created"
    CONVERSATION_ITEM_CREATED = "conversation.item.created"
    CONVERSATION_ITEM_TRUNCATED = "conversation.item.truncated"
    CONVERSATION_ITEM_DELETED = "conversation.item.deleted"
    CONVERSATION_ITEM_INPUT_AUDIO_TRANSCRIPTION_COMPLETED = (
        "conversation.item.input_audio_transcription.completed"
    )
    CONVERSATION_ITEM_INPUT_AUDIO_TRANSCRIPTION_FAILED = (
        "conversation.item.input_audio_transcription.failed"
    )
    INPUT_AUDIO_BUFFER_COMMITTED = "input_audio_buffer.committed"
    INPUT_AUDIO_BUFFER_CLEARED = "input_audio_buffer.cleared"
    INPUT_AUDIO_BUFFER_SPEECH_STARTED = "input_audio_buffer.speech_started"
    INPUT_AUDIO_BUFFER_SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
    RESPONSE_CREATED = "response.created"
    RESPONSE_DONE = "response.done"
    RESPONSE_OUTPUT_ITEM_ADDED = "response.output_item.added"
    RESPONSE_OUTPUT_ITEM_DONE = "response.output_item.done"
    RESPONSE_CONTENT_PART_ADDED = "response.content_part.added"
    RESPONSE_CONTENT_PART_DONE = "response.content_part.done"
    RESPONSE_TEXT_DELTA = "response.text.delta"
    RESPONSE_TEXT_DONE = "response.text.done"
    RESPONSE_AUDIO_TRANSCRIPT_DELTA = "response.audio_transcript.delta"
    RESPONSE_AUDIO_TRANSCRIPT_DONE = "response.audio_transcript.done"
    RESPONSE_AUDIO_DELTA = "response.audio.delta"
    RESPONSE_AUDIO_DONE = "response.audio.done"
    RESPONSE_FUNCTION_CALL_ARGUMENTS_DELTA = "response.function_call_arguments.delta"
    RESPONSE_FUNCTION_CALL_ARGUMENTS_DONE = "response.function_call_arguments.done"
    RATE_LIMITS_UPDATED = "rate_limits.updated"


class ClientEvent(BaseModel):
    """Base model for events sent to the server."""

    type: str
    event_id: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class SessionUpdateEvent(ClientEvent):
    """Event to update session configuration.

    The server will respond with a session.updated event.
    """

    type: str = ClientEventType.SESSION_UPDATE.value
    session: SessionConfig

    def to_wire(self) -> Dict[str, Any]:
        data = super().to_wire()
        data["session"] = self.session.to_wire()
        return data


class InputAudioBufferAppendEvent(ClientEvent):
    """Append base64 PCM16 audio to the server-side input buffer."""

    type: str = ClientEventType.INPUT_AUDIO_BUFFER_APPEND.value
    audio: str  # Base64 encoded audio


class InputAudioBufferCommitEvent(ClientEvent):
    """Commit the input buffer as a user message (manual turn detection)."""

    type: str = ClientEventType.INPUT_AUDIO_BUFFER_COMMIT.value


class ConversationItemCreateEvent(ClientEvent):
    """Add an item to the conversation."""

    type: str = ClientEventType.CONVERSATION_ITEM_CREATE.value
    item: ConversationItemParam
    previous_item_id: Optional[str] = None


class ConversationItemTruncateEvent(ClientEvent):
    """Truncate a previous assistant message's audio to what was actually heard."""

    type: str = ClientEventType.CONVERSATION_ITEM_TRUNCATE.value
    item_id: str
    content_index: int = 0
    audio_end_ms: int


class ConversationItemDeleteEvent(ClientEvent):
    """Remove an item from the conversation history."""

    type: str = ClientEventType.CONVERSATION_ITEM_DELETE.value
    item_id: str


class ResponseCreateEvent(ClientEvent):
    """Ask the server to generate a response."""

    type: str = ClientEventType.RESPONSE_CREATE.value
    response: Optional[Dict[str, Any]] = None


class ResponseCancelEvent(ClientEvent):
    """Cancel an in-progress response."""

    type: str = ClientEventType.RESPONSE_CANCEL.value
    response_id: Optional[str] = None
