import numpy as np
import pytest

from realtime_console.audio import playback as playback_module
from realtime_console.audio.playback import AudioPlaybackChannel
from realtime_console.exceptions import DeviceUnavailable
from realtime_console.models.session_state import PlaybackState


def samples(count, value=1):
    return np.full(count, value, dtype=np.int16)


@pytest.fixture
def player():
    return AudioPlaybackChannel()


def test_interrupt_reports_rendered_sample_count(player):
    player.add_16bit_pcm(samples(1000), "item_1")
    player.render(300)

    offset = player.interrupt()
    assert offset.track_id == "item_1"
    assert offset.sample_offset == 300
    assert offset.audio_end_ms == 12  # 300 samples at 24kHz


def test_interrupt_counts_across_buffers(player):
    player.add_16bit_pcm(samples(200), "item_1")
    player.add_16bit_pcm(samples(200), "item_1")
    player.render(150)
    player.render(150)

    assert player.interrupt().sample_offset == 300


def test_interrupt_when_idle_returns_none(player):
    assert player.interrupt() is None


def test_second_interrupt_returns_none(player):
    player.add_16bit_pcm(samples(100), "item_1")
    player.render(10)
    assert player.interrupt() is not None
    assert player.interrupt() is None


def test_interrupt_after_playback_finished_returns_none(player):
    player.add_16bit_pcm(samples(100), "item_1")
    player.render(200)
    assert player.state is PlaybackState.IDLE
    assert player.interrupt() is None


def test_render_pads_with_silence(player):
    player.add_16bit_pcm(samples(100, value=7), "item_1")
    block = player.render(160)

    assert block.dtype == np.int16
    assert np.all(block[:100] == 7)
    assert np.all(block[100:] == 0)
    assert player.underruns == 1


def test_tracks_play_in_arrival_order(player):
    player.add_16bit_pcm(samples(50, value=1), "first")
    player.add_16bit_pcm(samples(50, value=2), "second")
    player.add_16bit_pcm(samples(50, value=1), "first")

    block = player.render(150)
    assert np.all(block[:100] == 1)
    assert np.all(block[100:] == 2)


def test_next_track_reports_its_own_offset(player):
    player.add_16bit_pcm(samples(100), "first")
    player.add_16bit_pcm(samples(100), "second")
    player.render(130)

    offset = player.interrupt()
    assert offset.track_id == "second"
    assert offset.sample_offset == 30


def test_interrupted_track_drops_late_buffers(player):
    player.add_16bit_pcm(samples(100), "item_1")
    player.render(10)
    player.interrupt()

    player.add_16bit_pcm(samples(100), "item_1")
    assert player.state is PlaybackState.INTERRUPTED
    assert np.all(player.render(50) == 0)


def test_new_track_plays_after_interrupt(player):
    player.add_16bit_pcm(samples(100), "item_1")
    player.render(10)
    player.interrupt()

    player.add_16bit_pcm(samples(100, value=3), "item_2")
    assert player.state is PlaybackState.PLAYING
    assert np.all(player.render(50) == 3)


def test_accepts_raw_bytes(player):
    pcm = np.arange(10, dtype=np.int16).tobytes()
    queued = player.add_16bit_pcm(pcm, "item_1")
    assert queued.tolist() == list(range(10))
    assert player.render(10).tolist() == list(range(10))


def test_frequencies_are_zero_when_idle(player):
    spectrum = player.get_frequencies()
    assert spectrum.shape == (64,)
    assert not spectrum.any()


def test_frequencies_while_playing(player):
    tone = (np.sin(2 * np.pi * 440 * np.arange(2400) / 24000) * 10000).astype(np.int16)
    player.add_16bit_pcm(tone, "item_1")
    player.render(960)

    spectrum = player.get_frequencies()
    assert spectrum.max() == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_connect_opens_output_stream(player, fake_sd):
    await player.connect()
    stream = fake_sd.output_streams[-1]
    assert stream.active
    assert stream.kwargs["samplerate"] == 24000
    assert stream.kwargs["dtype"] == "int16"

    player.add_16bit_pcm(samples(480, value=5), "item_1")
    outdata = np.zeros((480, 1), dtype=np.int16)
    stream.callback(outdata, 480, None, None)
    assert np.all(outdata == 5)

    await player.close()
    assert stream.closed
    assert not player.is_open


@pytest.mark.asyncio
async def test_connect_without_output_device(player, fake_sd):
    fake_sd.has_output = False
    with pytest.raises(DeviceUnavailable) as exc_info:
        await player.connect()
    assert exc_info.value.kind == "output"


@pytest.mark.asyncio
async def test_connect_without_audio_backend(player, monkeypatch):
    monkeypatch.setattr(playback_module, "AUDIO_AVAILABLE", False)
    with pytest.raises(DeviceUnavailable):
        await player.connect()


@pytest.mark.asyncio
async def test_close_forgets_interrupted_tracks(player):
    player.add_16bit_pcm(samples(100), "item_1")
    player.render(10)
    player.interrupt()
    await player.close()

    player.add_16bit_pcm(samples(100), "item_1")
    assert player.state is PlaybackState.PLAYING
