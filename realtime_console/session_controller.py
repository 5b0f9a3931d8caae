"""
Session controller for the realtime console.

SessionController owns one realtime voice session end to end: the protocol
connection, the capture and playback channels, the conversation store, the
event log and the tool registry.

All session state is changed on a single orchestration task that consumes an
inbox queue. The WebSocket receive loop, the capture pump and tool tasks only
post messages to it. Every message carries the session generation it belongs
to; after a disconnect the generation moves on and late messages, such as a
tool result from the previous session, are dropped.

Usage:
    controller = SessionController(get_config())
    controller.register_tool(echo_tool)
    await controller.connect()
    await controller.begin_manual_capture()
    ...
    await controller.end_manual_capture()
    await controller.disconnect()
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

import numpy as np

from realtime_console.audio.capture import AudioCaptureChannel
from realtime_console.audio.playback import AudioPlaybackChannel
from realtime_console.config.logging_config import configure_logging
from realtime_console.config.models import ApplicationConfig
from realtime_console.conversation_store import ConversationStore
from realtime_console.event_log import EventLog, EventSource, RealtimeEvent
from realtime_console.exceptions import (
    ConnectionError,
    DeviceUnavailable,
    InvalidTurnModeError,
)
from realtime_console.models.conversation import (
    ConversationItem,
    ItemDelta,
    ItemRole,
    ItemStatus,
    ItemType,
    TrackOffset,
)
from realtime_console.models.session_state import (
    CaptureState,
    ConnectionState,
    PlaybackState,
    SessionConfig,
    TurnDetection,
)
from realtime_console.models.tool_models import ToolDefinition, ToolInvocation, ToolResult
from realtime_console.realtime.connection import RealtimeConnection
from realtime_console.tool_registry import ToolRegistry

logger = configure_logging("session_controller")


@dataclass
class _Message:
    generation: int
    kind: str
    args: Tuple[Any, ...] = field(default_factory=tuple)


class SessionController:
    """
    State machine for one realtime voice session.

    States: DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTING -> DISCONNECTED.
    While connected, capture is IDLE or CAPTURING and playback is IDLE,
    PLAYING or INTERRUPTED.
    """

    def __init__(
        self,
        config: Optional[ApplicationConfig] = None,
        connection: Optional[RealtimeConnection] = None,
        capture: Optional[AudioCaptureChannel] = None,
        playback: Optional[AudioPlaybackChannel] = None,
        tools: Optional[ToolRegistry] = None,
    ):
        self.app_config = config or ApplicationConfig()
        sample_rate = self.app_config.audio.sample_rate

        self.connection = connection or RealtimeConnection(self.app_config.openai, sample_rate)
        self.capture = capture or AudioCaptureChannel(self.app_config.audio)
        self.playback = playback or AudioPlaybackChannel(self.app_config.audio)
        self.tools = tools or ToolRegistry()
        self.store = ConversationStore(sample_rate)
        self.event_log = EventLog()

        self._config = SessionConfig.from_defaults(self.app_config.session)
        self._state = ConnectionState.DISCONNECTED
        self._capture_state = CaptureState.IDLE
        self._generation = 0

        self._inbox: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._tool_tasks: Set[asyncio.Task] = set()
        self._background: Set[asyncio.Task] = set()
        self._dispatched_calls: Set[str] = set()

        self.connection.on("realtime.event", self._on_realtime_event)
        self.connection.on("conversation.updated", self._on_conversation_updated)
        self.connection.on("conversation.interrupted", self._on_conversation_interrupted)
        self.connection.on("conversation.item.deleted", self._on_item_deleted)
        self.connection.on("error", self._on_error)
        self.connection.on("close", self._on_close)

    # Accessors

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def capture_state(self) -> CaptureState:
        return self._capture_state

    @property
    def playback_state(self) -> PlaybackState:
        if self._state is not ConnectionState.CONNECTED:
            return PlaybackState.IDLE
        return self.playback.state

    @property
    def config(self) -> SessionConfig:
        return self._config.copy()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def items(self) -> List[ConversationItem]:
        return self.store.items()

    def events(self) -> List[RealtimeEvent]:
        return list(self.event_log.entries())

    def capture_frequencies(self) -> np.ndarray:
        return self.capture.get_frequencies()

    def playback_frequencies(self) -> np.ndarray:
        return self.playback.get_frequencies()

    # Lifecycle

    async def connect(self, initial_message: Optional[List[Dict[str, Any]]] = None) -> None:
        """
        Open the devices and the protocol connection, then configure the session.

        Args:
            initial_message: Optional user content parts sent right after the
                session is configured

        Raises:
            ConnectionError: If already connecting or connected, or the network fails
            DeviceUnavailable: If a capture or playback device can't be opened
        """
        if self._state is not ConnectionState.DISCONNECTED:
            raise ConnectionError(f"Cannot connect while {self._state.value}")

        self._state = ConnectionState.CONNECTING
        self._generation += 1
        self.store.clear()
        self.event_log.clear()
        self._dispatched_calls.clear()
        self._inbox = asyncio.Queue()
        logger.info(f"[SESSION] Connecting (generation {self._generation})")

        try:
            await self.capture.begin()
            await self.playback.connect()
            await self.connection.connect()
            self._worker = asyncio.create_task(self._run())
            await self.connection.update_session(self._config, self.tools.schemas())
            if initial_message:
                await self.connection.send_user_message_content(initial_message)
            self._state = ConnectionState.CONNECTED
            if self._config.turn_detection is TurnDetection.SERVER_DETECTED:
                await self._start_capture()
        except asyncio.CancelledError:
            logger.warning("[SESSION] Connect cancelled")
            await self._teardown()
            raise
        except Exception as e:
            logger.error(f"[SESSION] Connect failed: {e}")
            await self._teardown()
            if isinstance(e, (ConnectionError, DeviceUnavailable)):
                raise
            raise ConnectionError(f"Connect failed: {e}") from e

        logger.info(f"[SESSION] Connected ({self._config.turn_detection.value} turn detection)")

    async def disconnect(self) -> None:
        """Tear the session down and reset all in-memory state. Idempotent."""
        if self._state in (ConnectionState.DISCONNECTED, ConnectionState.DISCONNECTING):
            return
        logger.info("[SESSION] Disconnecting")
        await self._teardown()
        logger.info("[SESSION] Disconnected")

    async def _teardown(self) -> None:
        self._state = ConnectionState.DISCONNECTING
        self._generation += 1

        try:
            await self.connection.disconnect()
        except Exception as e:
            logger.error(f"[SESSION] Error closing connection: {e}")

        worker, self._worker = self._worker, None
        if worker is not None and worker is not asyncio.current_task():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        inbox, self._inbox = self._inbox, None
        # Release anyone blocked in _post_and_wait
        while inbox is not None and not inbox.empty():
            inbox.get_nowait()
            inbox.task_done()

        try:
            await self.capture.end()
        except Exception as e:
            logger.error(f"[SESSION] Error closing capture: {e}")
        try:
            self.playback.interrupt()
            await self.playback.close()
        except Exception as e:
            logger.error(f"[SESSION] Error closing playback: {e}")

        self.store.clear()
        self.event_log.clear()
        self._dispatched_calls.clear()
        self._config = SessionConfig.from_defaults(self.app_config.session)
        self._capture_state = CaptureState.IDLE
        self._state = ConnectionState.DISCONNECTED

    # Session configuration

    async def set_turn_detection(self, mode: TurnDetection) -> None:
        """Switch between manual push-to-talk and server-detected turns."""
        mode = TurnDetection(mode)
        if self._state is not ConnectionState.CONNECTED:
            logger.debug(f"[SESSION] Ignoring turn detection change while {self._state.value}")
            return

        if (
            self._config.turn_detection is TurnDetection.SERVER_DETECTED
            and mode is not TurnDetection.SERVER_DETECTED
            and self._capture_state is CaptureState.CAPTURING
        ):
            await self._stop_capture()

        self._config = self._config.copy(turn_detection=mode)
        await self.connection.update_session(self._config, self.tools.schemas())

        if mode is TurnDetection.SERVER_DETECTED and self._capture_state is CaptureState.IDLE:
            await self._start_capture()
        logger.info(f"[SESSION] Turn detection set to {mode.value}")

    async def update_instructions(self, instructions: str) -> None:
        self._config = self._config.copy(instructions=instructions)
        if self.is_connected:
            await self.connection.update_session(self._config, self.tools.schemas())

    def register_tool(self, definition: ToolDefinition) -> None:
        """Register a tool; pushes the new schema at once when connected.

        Raises:
            DuplicateToolError: If the name is already registered
        """
        self.tools.register(definition)
        self.connection.add_tool(definition.to_openai_tool().model_dump())
        if self.is_connected:
            self._fire_and_forget(
                self.connection.update_session(self._config, self.tools.schemas()),
                f"push tool {definition.name}",
            )

    # Turns

    async def begin_manual_capture(self) -> None:
        """Push-to-talk start: cut off the assistant, then capture."""
        self._require_manual()
        if self._capture_state is CaptureState.CAPTURING:
            return
        await self._barge_in()
        await self._start_capture()

    async def end_manual_capture(self) -> None:
        """Push-to-talk end: stop capturing and request a response."""
        self._require_manual()
        if self._capture_state is not CaptureState.CAPTURING:
            return
        await self._stop_capture()
        # Queued behind the frames captured before the pause
        await self._post_and_wait(self.connection.create_response)

    async def send_text(self, text: str) -> None:
        if not self.is_connected:
            raise ConnectionError("Cannot send text: not connected")
        await self.connection.send_user_message_content([{"type": "input_text", "text": text}])

    async def cancel_response(self) -> Optional[TrackOffset]:
        """Interrupt playback and cancel the response being heard, if any."""
        if not self.is_connected:
            return None
        return await self._barge_in()

    async def delete_item(self, item_id: str) -> bool:
        """Remove an item locally and remotely. Absent items are a no-op."""
        if not self.store.remove(item_id):
            return False
        if self.connection.is_connected():
            await self.connection.delete_item(item_id)
        return True

    def _require_manual(self) -> None:
        if self._state is not ConnectionState.CONNECTED:
            raise ConnectionError("Manual capture requires a connected session")
        if self._config.turn_detection is not TurnDetection.MANUAL:
            raise InvalidTurnModeError(
                f"Manual capture is only available in manual mode, not {self._config.turn_detection.value}"
            )

    async def _start_capture(self) -> None:
        await self.capture.record(self._on_capture_frame)
        self._capture_state = CaptureState.CAPTURING

    async def _stop_capture(self) -> None:
        await self.capture.pause()
        self._capture_state = CaptureState.IDLE

    async def _barge_in(self) -> Optional[TrackOffset]:
        offset = self.playback.interrupt()
        if offset is None:
            return None

        if self.store.truncate(offset.track_id, offset.sample_offset):
            cancel = self.connection.cancel_response(offset.track_id, offset.sample_offset)
        else:
            cancel = self.connection.cancel_response()
        self._fire_and_forget(cancel, f"cancel response for {offset.track_id}")
        return offset

    def _fire_and_forget(self, coro: Awaitable[Any], description: str) -> None:
        async def run() -> None:
            try:
                await coro
            except Exception as e:
                logger.error(f"[SESSION] Failed to {description}: {e}")

        task = asyncio.create_task(run())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # Inbox

    def _post(self, kind: str, *args: Any, generation: Optional[int] = None) -> None:
        if self._inbox is None:
            logger.debug(f"[SESSION] Dropping {kind}: no active session")
            return
        self._inbox.put_nowait(_Message(self._generation if generation is None else generation, kind, args))

    async def _post_and_wait(self, command: Callable[[], Awaitable[Any]]) -> None:
        self._post("command", command)
        if self._inbox is not None:
            await self._inbox.join()

    async def _run(self) -> None:
        inbox = self._inbox
        while True:
            message = await inbox.get()
            try:
                if message.generation != self._generation:
                    logger.debug(f"[SESSION] Dropping stale {message.kind} from generation {message.generation}")
                    continue
                await self._process(message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[SESSION] Error processing {message.kind}: {e}")
            finally:
                inbox.task_done()

    async def _process(self, message: _Message) -> None:
        kind, args = message.kind, message.args
        if kind == "event":
            self.event_log.append(args[0])
        elif kind == "update":
            self._apply_update(*args)
        elif kind == "interrupted":
            await self._barge_in()
        elif kind == "deleted":
            self.store.remove(args[0])
        elif kind == "audio":
            await self.connection.append_input_audio(args[0])
        elif kind == "tool_result":
            await self._send_tool_result(args[0])
        elif kind == "command":
            await args[0]()
        else:
            logger.warning(f"[SESSION] Unknown inbox message: {kind}")

    def _apply_update(self, item_id: str, delta: ItemDelta) -> None:
        accepts_audio = not self.store.is_completed(item_id)
        item = self.store.apply_delta(item_id, delta)

        if delta.audio and accepts_audio and item.role is ItemRole.ASSISTANT:
            self.playback.add_16bit_pcm(delta.audio, item_id)

        if (
            item.type is ItemType.FUNCTION_CALL
            and delta.is_completion
            and item.is_completed
            and item.tool is not None
            and item.tool.call_id not in self._dispatched_calls
        ):
            self._dispatched_calls.add(item.tool.call_id)
            invocation = ToolInvocation.from_raw(item.tool.name, item.tool.arguments, item.tool.call_id, item.id)
            task = asyncio.create_task(self._run_tool(invocation, self._generation))
            self._tool_tasks.add(task)
            task.add_done_callback(self._tool_tasks.discard)

    async def _run_tool(self, invocation: ToolInvocation, generation: int) -> None:
        logger.info(f"[SESSION] Dispatching tool {invocation.tool_name} (call_id={invocation.call_id})")
        result = await self.tools.dispatch(invocation)
        if generation != self._generation:
            logger.debug(f"[SESSION] Discarding result of {invocation.tool_name} from an ended session")
            return
        self._post("tool_result", result, generation=generation)

    async def _send_tool_result(self, result: ToolResult) -> None:
        output = result.to_output_string()
        output_id = f"item_{uuid.uuid4().hex[:20]}"
        self.store.apply_delta(
            output_id,
            ItemDelta(
                role=ItemRole.TOOL,
                type=ItemType.FUNCTION_CALL_OUTPUT,
                call_id=result.call_id,
                output=output,
                status=ItemStatus.COMPLETED,
            ),
        )
        await self.connection.send_function_call_output(result.call_id, output, item_id=output_id)
        await self.connection.create_response()

    # Connection and device callbacks

    def _on_realtime_event(self, payload: Dict[str, Any], source: EventSource) -> None:
        self._post("event", RealtimeEvent(time=datetime.now(), source=source, payload=payload))

    def _on_conversation_updated(self, item_id: str, delta: ItemDelta) -> None:
        self._post("update", item_id, delta)

    def _on_conversation_interrupted(self) -> None:
        self._post("interrupted")

    def _on_item_deleted(self, item_id: str) -> None:
        self._post("deleted", item_id)

    def _on_error(self, error: Dict[str, Any]) -> None:
        logger.error(f"[SESSION] Realtime API error: {error.get('message', error)}")

    def _on_close(self) -> None:
        if self._state is ConnectionState.CONNECTED:
            logger.warning("[SESSION] Connection closed by remote side, tearing down session")
            self._fire_and_forget(self.disconnect(), "tear down closed session")

    def _on_capture_frame(self, frame: bytes) -> None:
        self._post("audio", frame)
