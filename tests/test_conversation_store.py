import io
import wave

import pytest

from realtime_console.conversation_store import ConversationStore, encode_wav
from realtime_console.models.conversation import (
    ItemDelta,
    ItemRole,
    ItemStatus,
    ItemType,
)


@pytest.fixture
def store():
    return ConversationStore()


def test_audio_deltas_accumulate_until_completion(store):
    b1 = b"\x01\x00\x02\x00"
    b2 = b"\x03\x00"
    store.apply_delta("item_1", ItemDelta(audio=b1))
    store.apply_delta("item_1", ItemDelta(audio=b2))
    item = store.apply_delta("item_1", ItemDelta(status=ItemStatus.COMPLETED))

    assert bytes(item.audio) == b1 + b2
    assert item.status is ItemStatus.COMPLETED
    assert len(store) == 1


def test_audio_after_completion_is_ignored(store):
    store.apply_delta("item_1", ItemDelta(audio=b"\x01\x00"))
    store.apply_delta("item_1", ItemDelta(status=ItemStatus.COMPLETED))
    item = store.apply_delta("item_1", ItemDelta(audio=b"\x02\x00"))

    assert bytes(item.audio) == b"\x01\x00"


def test_status_cannot_leave_completed(store):
    store.apply_delta("item_1", ItemDelta(status=ItemStatus.COMPLETED))
    item = store.apply_delta("item_1", ItemDelta(status=ItemStatus.IN_PROGRESS))
    assert item.status is ItemStatus.COMPLETED


def test_transcript_still_applies_after_completion(store):
    store.apply_delta(
        "user_1",
        ItemDelta(role=ItemRole.USER, type=ItemType.MESSAGE, status=ItemStatus.COMPLETED),
    )
    item = store.apply_delta("user_1", ItemDelta(transcript="hello there"))

    assert item.transcript == "hello there"
    assert item.role is ItemRole.USER


def test_text_and_transcript_deltas_append(store):
    store.apply_delta("item_1", ItemDelta(transcript_delta="Hel"))
    store.apply_delta("item_1", ItemDelta(transcript_delta="lo"))
    store.apply_delta("item_1", ItemDelta(text="a"))
    item = store.apply_delta("item_1", ItemDelta(text_delta="b"))

    assert item.transcript == "Hello"
    assert item.text == "ab"


def test_tool_fields_turn_message_into_function_call(store):
    store.apply_delta("fc_1", ItemDelta(tool_name="echo", call_id="call_1"))
    store.apply_delta("fc_1", ItemDelta(arguments_delta='{"text": '))
    item = store.apply_delta("fc_1", ItemDelta(arguments_delta='"hi"}'))

    assert item.type is ItemType.FUNCTION_CALL
    assert item.tool.name == "echo"
    assert item.tool.call_id == "call_1"
    assert item.tool.arguments == '{"text": "hi"}'


def test_arguments_are_frozen_after_completion(store):
    store.apply_delta("fc_1", ItemDelta(tool_name="echo", arguments="{}", status=ItemStatus.COMPLETED))
    item = store.apply_delta("fc_1", ItemDelta(arguments_delta="garbage"))
    assert item.tool.arguments == "{}"


def test_items_keep_insertion_order(store):
    for item_id in ["c", "a", "b"]:
        store.apply_delta(item_id, ItemDelta(role=ItemRole.USER))
    assert [item.id for item in store.items()] == ["c", "a", "b"]


def test_snapshots_are_independent(store):
    store.apply_delta("item_1", ItemDelta(audio=b"\x01\x00", transcript="x"))
    snapshot = store.get("item_1")
    snapshot.audio.extend(b"\xff\xff")
    snapshot.transcript = "changed"

    fresh = store.get("item_1")
    assert bytes(fresh.audio) == b"\x01\x00"
    assert fresh.transcript == "x"


def test_remove_absent_item_is_a_noop(store):
    store.apply_delta("item_1", ItemDelta(role=ItemRole.USER))

    assert store.remove("missing") is False
    assert [item.id for item in store.items()] == ["item_1"]
    assert store.remove("item_1") is True
    assert store.remove("item_1") is False
    assert len(store) == 0


def test_get_missing_item_returns_none(store):
    assert store.get("nope") is None
    assert "nope" not in store


def test_truncate_records_heard_samples_without_cutting_audio(store):
    store.apply_delta("item_1", ItemDelta(audio=b"\x01\x00" * 100))
    assert store.truncate("item_1", 40) is True

    item = store.get("item_1")
    assert item.truncated_at == 40
    assert item.sample_count == 100
    assert item.heard_audio == b"\x01\x00" * 40


def test_truncate_clamps_to_available_audio(store):
    store.apply_delta("item_1", ItemDelta(audio=b"\x01\x00" * 10))
    store.truncate("item_1", 500)
    assert store.get("item_1").truncated_at == 10


def test_truncate_unknown_item(store):
    assert store.truncate("missing", 10) is False


def test_completed_audio_item_gets_wav_rendering():
    store = ConversationStore(sample_rate=16000)
    pcm = b"\x01\x00\x02\x00\x03\x00"
    store.apply_delta("item_1", ItemDelta(audio=pcm))
    item = store.apply_delta("item_1", ItemDelta(status=ItemStatus.COMPLETED))

    with wave.open(io.BytesIO(item.audio_file), "rb") as wav_file:
        assert wav_file.getframerate() == 16000
        assert wav_file.getnchannels() == 1
        assert wav_file.getsampwidth() == 2
        assert wav_file.readframes(wav_file.getnframes()) == pcm


def test_completed_item_without_audio_has_no_wav(store):
    item = store.apply_delta("item_1", ItemDelta(text="hi", status=ItemStatus.COMPLETED))
    assert item.audio_file is None


def test_encode_wav_header():
    data = encode_wav(b"\x00\x00" * 4)
    assert data[:4] == b"RIFF"
    assert data[8:12] == b"WAVE"


def test_clear(store):
    store.apply_delta("item_1", ItemDelta(role=ItemRole.USER))
    store.clear()
    assert store.items() == []


def test_is_completed():
    store = ConversationStore()
    assert not store.is_completed("missing")

    store.apply_delta("msg_1", ItemDelta(role=ItemRole.ASSISTANT))
    assert not store.is_completed("msg_1")

    store.apply_delta("msg_1", ItemDelta(status=ItemStatus.COMPLETED))
    assert store.is_completed("msg_1")
