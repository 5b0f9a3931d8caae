"""
Conversation store.

Keeps the ordered list of conversation items for one session and merges the
incremental deltas produced by the realtime connection into them.

Completion policy: once an item is ``completed`` its audio buffer, status and
tool arguments are frozen. Later audio bytes, status changes and argument
updates for it are ignored (and logged). Transcript, text and output updates
are still applied, since input transcription arrives after the audio item has
already completed.
"""

import io
import logging
import wave
from collections import OrderedDict
from typing import List, Optional

from realtime_console.config.constants import (
    BYTES_PER_SAMPLE,
    DEFAULT_CHANNELS,
    DEFAULT_SAMPLE_RATE,
)
from realtime_console.models.conversation import (
    ConversationItem,
    ItemDelta,
    ItemStatus,
    ItemType,
    ToolCall,
)

logger = logging.getLogger(__name__)


def encode_wav(pcm: bytes, sample_rate: int = DEFAULT_SAMPLE_RATE, channels: int = DEFAULT_CHANNELS) -> bytes:
    """Wrap raw PCM16 bytes in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(BYTES_PER_SAMPLE)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)
    return buffer.getvalue()


class ConversationStore:
    """Ordered collection of conversation items for the current session."""

    def __init__(self, sample_rate: int = DEFAULT_SAMPLE_RATE):
        self.sample_rate = sample_rate
        self._items: "OrderedDict[str, ConversationItem]" = OrderedDict()

    def apply_delta(self, item_id: str, delta: ItemDelta) -> ConversationItem:
        """Merge ``delta`` into the item with ``item_id``, creating it if needed.

        Returns a snapshot of the item after the merge.
        """
        item = self._items.get(item_id)
        if item is None:
            item = ConversationItem(id=item_id)
            self._items[item_id] = item
            logger.debug(f"[CONVERSATION] Created item {item_id}")

        frozen = item.is_completed

        if not frozen:
            if delta.role is not None:
                item.role = delta.role
            if delta.type is not None:
                item.type = delta.type

        if delta.audio:
            if frozen:
                logger.warning(
                    f"[CONVERSATION] Ignoring {len(delta.audio)} audio bytes for completed item {item_id}"
                )
            else:
                item.audio.extend(delta.audio)

        if delta.text is not None:
            item.text = delta.text
        if delta.text_delta:
            item.text += delta.text_delta
        if delta.transcript is not None:
            item.transcript = delta.transcript
        if delta.transcript_delta:
            item.transcript += delta.transcript_delta
        if delta.output is not None:
            item.output = delta.output

        if self._has_tool_fields(delta):
            if frozen:
                logger.warning(f"[CONVERSATION] Ignoring tool update for completed item {item_id}")
            else:
                self._apply_tool_fields(item, delta)

        if delta.status is not None and delta.status is not item.status:
            if frozen:
                logger.warning(
                    f"[CONVERSATION] Ignoring status '{delta.status.value}' for completed item {item_id}"
                )
            else:
                item.status = delta.status
                if item.is_completed:
                    self._finalize(item)

        return item.snapshot()

    def _has_tool_fields(self, delta: ItemDelta) -> bool:
        return any(
            value is not None
            for value in (delta.tool_name, delta.call_id, delta.arguments, delta.arguments_delta)
        )

    def _apply_tool_fields(self, item: ConversationItem, delta: ItemDelta) -> None:
        if item.tool is None:
            item.tool = ToolCall()
            if item.type is ItemType.MESSAGE:
                item.type = ItemType.FUNCTION_CALL
        if delta.tool_name is not None:
            item.tool.name = delta.tool_name
        if delta.call_id is not None:
            item.tool.call_id = delta.call_id
        if delta.arguments is not None:
            item.tool.arguments = delta.arguments
        if delta.arguments_delta:
            item.tool.arguments += delta.arguments_delta

    def _finalize(self, item: ConversationItem) -> None:
        if item.audio:
            item.audio_file = encode_wav(bytes(item.audio), self.sample_rate)
            logger.debug(
                f"[CONVERSATION] Item {item.id} completed with {item.sample_count} samples of audio"
            )

    def truncate(self, item_id: str, sample_offset: int) -> bool:
        """Record that only the first ``sample_offset`` samples were heard."""
        item = self._items.get(item_id)
        if item is None:
            return False
        item.truncated_at = max(0, min(sample_offset, item.sample_count))
        logger.info(f"[CONVERSATION] Item {item_id} truncated at sample {item.truncated_at}")
        return True

    def get(self, item_id: str) -> Optional[ConversationItem]:
        item = self._items.get(item_id)
        return item.snapshot() if item else None

    def is_completed(self, item_id: str) -> bool:
        item = self._items.get(item_id)
        return item is not None and item.is_completed

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def items(self) -> List[ConversationItem]:
        """Snapshot of all items in insertion order."""
        return [item.snapshot() for item in self._items.values()]

    def remove(self, item_id: str) -> bool:
        """Delete an item; deleting an absent id is a no-op."""
        if self._items.pop(item_id, None) is None:
            return False
        logger.debug(f"[CONVERSATION] Removed item {item_id}")
        return True

    def clear(self) -> None:
        self._items.clear()
