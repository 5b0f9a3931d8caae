"""
WebSocket connection to the OpenAI Realtime API.

RealtimeConnection owns the socket and its receive loop. Outbound operations
are built from the pydantic client-event models; inbound server events are
translated into ItemDelta updates and re-emitted to registered handlers:

    realtime.event            (payload, EventSource)  every event, both ways
    error                     (error dict)            server-reported errors
    conversation.updated      (item_id, ItemDelta)    item created or changed
    conversation.interrupted  ()                      user started speaking
    conversation.item.deleted (item_id)               item removed remotely
    close                     ()                      socket closed remotely

Handlers may be plain functions or coroutines. A failing handler is logged
and does not stop the receive loop.
"""

import asyncio
import json
import traceback
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from realtime_console.audio.utils import AudioUtils
from realtime_console.config.constants import (
    BYTES_PER_SAMPLE,
    DEFAULT_SAMPLE_RATE,
    SPEECH_LOOKBACK_MS,
    WS_MAX_SIZE,
    WS_PING_INTERVAL,
    WS_PING_TIMEOUT,
)
from realtime_console.config.logging_config import configure_logging
from realtime_console.config.models import OpenAIConfig
from realtime_console.event_log import EventSource
from realtime_console.exceptions import ConnectionError
from realtime_console.models.conversation import ItemDelta, ItemRole, ItemStatus, ItemType
from realtime_console.models.openai_api import (
    ClientEvent,
    ConversationItemContentParam,
    ConversationItemCreateEvent,
    ConversationItemDeleteEvent,
    ConversationItemParam,
    ConversationItemTruncateEvent,
    InputAudioBufferAppendEvent,
    InputAudioBufferCommitEvent,
    MessageRole,
    ResponseCancelEvent,
    ResponseCreateEvent,
    ServerEventType,
    SessionUpdateEvent,
)
from realtime_console.models.session_state import SessionConfig

logger = configure_logging("realtime_connection")

Handler = Callable[..., Union[None, Awaitable[None]]]

_ROLES = {role.value: role for role in ItemRole}
_TYPES = {item_type.value: item_type for item_type in ItemType}


def _status_from_wire(status: Optional[str]) -> Optional[ItemStatus]:
    if status is None:
        return None
    # "incomplete" items (cut off by a cancel) will not change any more either
    if status in ("completed", "incomplete"):
        return ItemStatus.COMPLETED
    return ItemStatus.IN_PROGRESS


def delta_from_item(item: Dict[str, Any]) -> ItemDelta:
    """Translate a wire conversation item into an ItemDelta."""
    item_type = _TYPES.get(item.get("type", "message"), ItemType.MESSAGE)
    delta = ItemDelta(
        role=_ROLES.get(item.get("role", "")),
        type=item_type,
        status=_status_from_wire(item.get("status")),
    )

    if item_type is ItemType.FUNCTION_CALL:
        delta.role = delta.role or ItemRole.ASSISTANT
        delta.tool_name = item.get("name")
        delta.call_id = item.get("call_id")
        delta.arguments = item.get("arguments") or None
    elif item_type is ItemType.FUNCTION_CALL_OUTPUT:
        delta.role = ItemRole.TOOL
        delta.output = item.get("output")
    else:
        texts: List[str] = []
        transcripts: List[str] = []
        for part in item.get("content") or []:
            if part.get("text"):
                texts.append(part["text"])
            if part.get("transcript"):
                transcripts.append(part["transcript"])
        if texts:
            delta.text = "".join(texts)
        if transcripts:
            delta.transcript = "".join(transcripts)
    return delta


class RealtimeConnection:
    """
    Client side of one Realtime API WebSocket session.

    Attributes:
        config: Endpoint, model and credentials
        sample_rate: PCM16 rate used for audio offsets
    """

    def __init__(self, config: Optional[OpenAIConfig] = None, sample_rate: int = DEFAULT_SAMPLE_RATE):
        self.config = config or OpenAIConfig()
        self.sample_rate = sample_rate

        self.ws = None
        self._recv_task: Optional[asyncio.Task] = None
        self._closing = False
        self._handlers: Dict[str, List[Handler]] = {}
        self._tools: Dict[str, Dict[str, Any]] = {}
        self._server_vad = False

        # Input audio sent since the last commit, and the retained tail of the
        # session input; _input_offset is how many leading bytes were dropped
        self._pending_input_bytes = 0
        self._input_audio = bytearray()
        self._input_offset = 0
        self._speech_start_ms: Optional[int] = None
        # Audio waiting to be attached to the user item the server creates for it
        self._queued_speech: Dict[str, bytes] = {}
        self._queued_input_audio: Optional[bytes] = None

    # Handler registration

    def on(self, event_name: str, handler: Handler) -> None:
        """Register a handler for one of the emitted event names."""
        self._handlers.setdefault(event_name, []).append(handler)
        logger.debug(f"[REALTIME] Registered handler for {event_name}")

    def off(self, event_name: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    async def _emit(self, event_name: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event_name, [])):
            try:
                result = handler(*args)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"[REALTIME] Error in {event_name} handler: {e}")
                logger.debug(f"[REALTIME] Handler error details: {traceback.format_exc()}")

    # Connection lifecycle

    def is_connected(self) -> bool:
        return self.ws is not None and not self._closing

    async def connect(self) -> None:
        """Open the WebSocket and start the receive loop.

        Raises:
            ConnectionError: If already connected, or the socket can't be opened
        """
        if self.ws is not None:
            raise ConnectionError("Already connected to the Realtime API")

        try:
            headers = self.config.get_headers()
        except ValueError as e:
            raise ConnectionError(str(e)) from e

        url = self.config.get_websocket_url()
        logger.info(f"[REALTIME] Connecting to {url}")
        try:
            self.ws = await asyncio.wait_for(
                websockets.connect(
                    url,
                    max_size=WS_MAX_SIZE,
                    ping_interval=WS_PING_INTERVAL,
                    ping_timeout=WS_PING_TIMEOUT,
                    compression=None,
                    additional_headers=headers,
                ),
                timeout=self.config.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ConnectionError(
                f"Timed out connecting to the Realtime API after {self.config.timeout}s"
            ) from e
        except (OSError, WebSocketException) as e:
            raise ConnectionError(f"Failed to connect to the Realtime API: {e}") from e

        self._closing = False
        self._reset_session_state()
        self._recv_task = asyncio.create_task(self._recv_loop())
        logger.info("[REALTIME] Connected")

    async def disconnect(self) -> None:
        """Close the socket. Safe to call when not connected."""
        if self.ws is None:
            return
        self._closing = True
        ws, self.ws = self.ws, None

        if self._recv_task is not None and self._recv_task is not asyncio.current_task():
            self._recv_task.cancel()
            try:
                await self._recv_task
            except asyncio.CancelledError:
                pass
        self._recv_task = None

        try:
            await ws.close()
        except Exception as e:
            logger.warning(f"[REALTIME] Error closing WebSocket: {e}")
        self._reset_session_state()
        logger.info("[REALTIME] Disconnected")

    def _reset_session_state(self) -> None:
        self._pending_input_bytes = 0
        self._input_audio = bytearray()
        self._input_offset = 0
        self._speech_start_ms = None
        self._queued_speech.clear()
        self._queued_input_audio = None

    # Outbound

    async def send(self, event: ClientEvent) -> Dict[str, Any]:
        """Serialize and send ``event``; returns the payload that was sent.

        Raises:
            ConnectionError: If not connected or the socket fails mid-send
        """
        if not self.is_connected():
            raise ConnectionError(f"Cannot send {event.type}: not connected")

        payload = event.to_wire()
        payload["event_id"] = event.event_id or f"evt_{uuid.uuid4().hex[:20]}"
        try:
            await self.ws.send(json.dumps(payload))
        except ConnectionClosed as e:
            raise ConnectionError(f"Connection closed while sending {event.type}") from e

        if event.type != "input_audio_buffer.append":
            logger.debug(f"[REALTIME] Sent {event.type}")
        await self._emit("realtime.event", payload, EventSource.LOCAL)
        return payload

    async def update_session(self, config: SessionConfig, tools: Optional[List[Dict[str, Any]]] = None) -> None:
        """Push the whole session configuration, including all known tools."""
        if tools is not None:
            self._tools = {tool["name"]: tool for tool in tools}
        self._server_vad = config.turn_detection.to_wire() is not None
        wire = config.to_wire(list(self._tools.values()) or None)
        await self.send(SessionUpdateEvent(session=wire))

    def add_tool(self, schema: Dict[str, Any]) -> None:
        """Remember a tool schema for the next ``update_session``."""
        self._tools[schema["name"]] = schema

    async def send_user_message_content(self, parts: List[Dict[str, Any]]) -> None:
        """Add a user message built from ``parts`` and ask for a response."""
        content = []
        for part in parts:
            if part.get("type") == "input_audio" and isinstance(part.get("audio"), (bytes, bytearray)):
                part = dict(part, audio=AudioUtils.convert_to_base64(bytes(part["audio"])))
            content.append(ConversationItemContentParam(**part))

        if content:
            await self.send(
                ConversationItemCreateEvent(
                    item=ConversationItemParam(type="message", role=MessageRole.USER, content=content)
                )
            )
        await self.create_response()

    async def send_function_call_output(self, call_id: str, output: str, item_id: Optional[str] = None) -> None:
        await self.send(
            ConversationItemCreateEvent(
                item=ConversationItemParam(
                    id=item_id,
                    type="function_call_output",
                    call_id=call_id,
                    output=output,
                )
            )
        )

    async def append_input_audio(self, pcm: bytes) -> None:
        """Send captured PCM16 audio to the input buffer."""
        if not pcm:
            return
        await self.send(InputAudioBufferAppendEvent(audio=AudioUtils.convert_to_base64(pcm)))
        if not self._server_vad:
            self._pending_input_bytes += len(pcm)
        self._input_audio.extend(pcm)
        if self._server_vad and self._speech_start_ms is None:
            # Only the lookback window can still become part of an utterance
            self._drop_input_before(len(self._input_audio) - self._lookback_bytes())

    async def create_response(self) -> None:
        """Ask for a response, committing buffered input audio first in manual mode."""
        if not self._server_vad and self._pending_input_bytes > 0:
            self._queued_input_audio = bytes(self._input_audio[-self._pending_input_bytes :])
            await self.send(InputAudioBufferCommitEvent())
            self._pending_input_bytes = 0
            self._drop_input_before(len(self._input_audio))
        await self.send(ResponseCreateEvent())

    async def cancel_response(self, track_id: Optional[str] = None, sample_offset: int = 0) -> None:
        """Cancel the in-flight response and, given a track, truncate its audio.

        ``audio_end_ms`` is ``sample_offset * 1000 / sample_rate``, floored.
        """
        await self.send(ResponseCancelEvent())
        if track_id is None:
            return
        audio_end_ms = max(0, sample_offset) * 1000 // self.sample_rate
        await self.send(
            ConversationItemTruncateEvent(item_id=track_id, content_index=0, audio_end_ms=audio_end_ms)
        )

    async def delete_item(self, item_id: str) -> None:
        await self.send(ConversationItemDeleteEvent(item_id=item_id))

    # Inbound

    async def _recv_loop(self) -> None:
        ws = self.ws
        try:
            async for message in ws:
                if isinstance(message, bytes):
                    logger.warning(f"[REALTIME] Ignoring {len(message)} bytes of binary data")
                    continue
                try:
                    payload = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning(f"[REALTIME] Received invalid JSON: {message[:100]}...")
                    continue
                if not isinstance(payload, dict):
                    logger.warning(f"[REALTIME] Ignoring non-object message: {message[:100]}...")
                    continue
                try:
                    await self.handle_server_event(payload)
                except Exception as e:
                    logger.error(f"[REALTIME] Error handling {payload.get('type')} event: {e}")
                    logger.debug(f"[REALTIME] Event error details: {traceback.format_exc()}")
        except ConnectionClosed as e:
            logger.warning(f"[REALTIME] Connection closed: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[REALTIME] Error in receive loop: {e}")
            logger.debug(f"[REALTIME] Receive loop error details: {traceback.format_exc()}")

        if not self._closing:
            logger.info("[REALTIME] Connection closed by remote side")
            await self._emit("close")

    async def handle_server_event(self, payload: Dict[str, Any]) -> None:
        """Log one server event and emit whatever it means for the conversation."""
        await self._emit("realtime.event", payload, EventSource.REMOTE)

        event_type = payload.get("type", "")
        if event_type == ServerEventType.ERROR:
            error = payload.get("error") or payload
            if not isinstance(error, dict):
                error = {"message": str(error)}
            logger.error(f"[REALTIME] Server error: {error.get('message', error)}")
            await self._emit("error", error)
        elif event_type == ServerEventType.INPUT_AUDIO_BUFFER_SPEECH_STARTED:
            self._speech_start_ms = payload.get("audio_start_ms")
            await self._emit("conversation.interrupted")
        elif event_type == ServerEventType.INPUT_AUDIO_BUFFER_SPEECH_STOPPED:
            self._queue_speech(payload.get("item_id"), payload.get("audio_end_ms"))
        elif event_type == ServerEventType.INPUT_AUDIO_BUFFER_COMMITTED:
            item_id = payload.get("item_id")
            if item_id and self._queued_input_audio is not None:
                self._queued_speech[item_id] = self._queued_input_audio
                self._queued_input_audio = None
        elif event_type in (
            ServerEventType.CONVERSATION_ITEM_CREATED,
            ServerEventType.RESPONSE_OUTPUT_ITEM_ADDED,
            ServerEventType.RESPONSE_OUTPUT_ITEM_DONE,
        ):
            item = payload.get("item") or {}
            if item.get("id"):
                await self._emit_item(item)
        elif event_type == ServerEventType.CONVERSATION_ITEM_DELETED:
            await self._emit("conversation.item.deleted", payload.get("item_id"))
        elif event_type == ServerEventType.CONVERSATION_ITEM_INPUT_AUDIO_TRANSCRIPTION_COMPLETED:
            await self._emit(
                "conversation.updated",
                payload["item_id"],
                ItemDelta(transcript=payload.get("transcript", "")),
            )
        elif event_type == ServerEventType.RESPONSE_AUDIO_DELTA:
            await self._emit(
                "conversation.updated",
                payload["item_id"],
                ItemDelta(audio=AudioUtils.convert_from_base64(payload.get("delta", ""))),
            )
        elif event_type == ServerEventType.RESPONSE_AUDIO_TRANSCRIPT_DELTA:
            await self._emit(
                "conversation.updated", payload["item_id"], ItemDelta(transcript_delta=payload.get("delta", ""))
            )
        elif event_type == ServerEventType.RESPONSE_TEXT_DELTA:
            await self._emit(
                "conversation.updated", payload["item_id"], ItemDelta(text_delta=payload.get("delta", ""))
            )
        elif event_type == ServerEventType.RESPONSE_FUNCTION_CALL_ARGUMENTS_DELTA:
            await self._emit(
                "conversation.updated", payload["item_id"], ItemDelta(arguments_delta=payload.get("delta", ""))
            )
        elif event_type == ServerEventType.RESPONSE_FUNCTION_CALL_ARGUMENTS_DONE:
            await self._emit(
                "conversation.updated", payload["item_id"], ItemDelta(arguments=payload.get("arguments", ""))
            )

    async def _emit_item(self, item: Dict[str, Any]) -> None:
        delta = delta_from_item(item)
        if delta.role is ItemRole.USER:
            audio = self._queued_speech.pop(item["id"], None)
            if audio:
                delta.audio = audio
        await self._emit("conversation.updated", item["id"], delta)

    def _queue_speech(self, item_id: Optional[str], audio_end_ms: Optional[int]) -> None:
        if not item_id or self._speech_start_ms is None or audio_end_ms is None:
            return
        # Server offsets count everything appended this session
        bytes_per_ms = self.sample_rate * BYTES_PER_SAMPLE // 1000
        start = max(0, self._speech_start_ms * bytes_per_ms - self._input_offset)
        end = max(0, audio_end_ms * bytes_per_ms - self._input_offset)
        self._queued_speech[item_id] = bytes(self._input_audio[start:end])
        self._speech_start_ms = None
        self._drop_input_before(end)

    def _lookback_bytes(self) -> int:
        return SPEECH_LOOKBACK_MS * self.sample_rate * BYTES_PER_SAMPLE // 1000

    def _drop_input_before(self, position: int) -> None:
        """Forget retained input audio before byte ``position`` of the buffer."""
        position = min(position, len(self._input_audio))
        if position <= 0:
            return
        del self._input_audio[:position]
        self._input_offset += position
