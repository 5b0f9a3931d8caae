"""
Audio playback channel.

Queues PCM16 buffers per track and renders them to a sounddevice output stream
in the order tracks first arrived. The render callback and ``interrupt()``
share one lock, so an interruption stops output at an exact sample and reports
how many samples of the interrupted track were emitted.
"""

import logging
import threading
from collections import OrderedDict, deque
from typing import Any, Deque, Dict, Optional, Set

import numpy as np

from realtime_console.audio.utils import AudioUtils, PCMInput
from realtime_console.config.models import AudioConfig
from realtime_console.exceptions import DeviceUnavailable
from realtime_console.models.conversation import TrackOffset
from realtime_console.models.session_state import PlaybackState

try:
    import sounddevice as sd

    AUDIO_AVAILABLE = True
except (ImportError, OSError):
    AUDIO_AVAILABLE = False
    sd = None

logger = logging.getLogger(__name__)

DEFAULT_TRACK_ID = "default"


class AudioPlaybackChannel:
    """
    Track-aware speaker output.

    Buffers for a track that has been interrupted are dropped, so audio still
    streaming in for a cancelled response is never heard.
    """

    def __init__(self, config: Optional[AudioConfig] = None):
        self.config = config or AudioConfig()
        self.sample_rate = self.config.sample_rate

        self._stream: Optional[Any] = None
        self._lock = threading.Lock()

        # Pending buffers per track, in first-arrival order
        self._tracks: "OrderedDict[str, Deque[np.ndarray]]" = OrderedDict()
        # Read position inside the first buffer of the first track
        self._head = 0
        # Samples emitted so far, per track
        self._emitted: Dict[str, int] = {}
        self._interrupted_tracks: Set[str] = set()
        self._interrupted = False
        self._last_block = np.zeros(0, dtype=np.int16)

        # Statistics
        self.underruns = 0

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    @property
    def state(self) -> PlaybackState:
        with self._lock:
            if self._has_pending():
                return PlaybackState.PLAYING
            if self._interrupted:
                return PlaybackState.INTERRUPTED
            return PlaybackState.IDLE

    async def connect(self) -> None:
        """Open the output device.

        Raises:
            DeviceUnavailable: If there is no audio backend or no output device
        """
        if self._stream is not None:
            logger.warning("[AUDIO] Playback device already open")
            return

        if not AUDIO_AVAILABLE or sd is None:
            raise DeviceUnavailable("output", "sounddevice/PortAudio is not available")

        try:
            sd.query_devices(self.config.output_device, kind="output")
            stream = sd.OutputStream(
                samplerate=self.sample_rate,
                channels=self.config.channels,
                dtype="int16",
                blocksize=self.config.output_block_size,
                latency=self.config.output_latency,
                device=self.config.output_device,
                callback=self._callback,
            )
            stream.start()
        except (ValueError, sd.PortAudioError) as e:
            raise DeviceUnavailable("output", str(e)) from e

        self._stream = stream
        logger.info(f"[AUDIO] Playback device opened ({self.sample_rate}Hz)")

    def add_16bit_pcm(self, buffer: PCMInput, track_id: str = DEFAULT_TRACK_ID) -> np.ndarray:
        """Queue ``buffer`` for playback on ``track_id``.

        Returns the samples as int16. They are not queued when the track has
        been interrupted.
        """
        samples = AudioUtils.to_int16(buffer)
        with self._lock:
            if track_id in self._interrupted_tracks:
                logger.debug(f"[AUDIO] Dropping {samples.size} samples for interrupted track {track_id}")
                return samples
            if samples.size:
                self._tracks.setdefault(track_id, deque()).append(samples)
                self._emitted.setdefault(track_id, 0)
                self._interrupted = False
        return samples

    def interrupt(self) -> Optional[TrackOffset]:
        """Stop playback now and discard everything queued.

        Returns the offset reached in the track that was playing, or None when
        nothing was playing.
        """
        with self._lock:
            if not self._has_pending():
                self._clear_locked()
                return None

            # Rendering always consumes the first track with queued buffers
            track_id = next(track for track, buffers in self._tracks.items() if buffers)
            offset = TrackOffset(
                track_id=track_id,
                sample_offset=self._emitted.get(track_id, 0),
                sample_rate=self.sample_rate,
            )
            self._interrupted_tracks.add(track_id)
            self._interrupted_tracks.update(self._tracks.keys())
            self._clear_locked()
            self._interrupted = True

        logger.info(
            f"[AUDIO] Playback interrupted on track {offset.track_id} at sample {offset.sample_offset}"
        )
        return offset

    def render(self, frames: int) -> np.ndarray:
        """Produce the next ``frames`` samples; silence where nothing is queued."""
        out = np.zeros(frames, dtype=np.int16)
        with self._lock:
            written = 0
            while written < frames and self._tracks:
                track_id, buffers = next(iter(self._tracks.items()))
                if not buffers:
                    if len(self._tracks) > 1:
                        # Current track drained and the next one is waiting
                        self._tracks.popitem(last=False)
                        continue
                    break

                chunk = buffers[0]
                count = min(frames - written, chunk.size - self._head)
                out[written : written + count] = chunk[self._head : self._head + count]
                self._head += count
                written += count
                self._emitted[track_id] += count

                if self._head >= chunk.size:
                    buffers.popleft()
                    self._head = 0

            if 0 < written < frames:
                self.underruns += 1
            self._last_block = out
        return out

    def get_frequencies(self) -> np.ndarray:
        """Spectrum of the most recently rendered block, for visualization only."""
        with self._lock:
            block = self._last_block if self._has_pending() else np.zeros(0, dtype=np.int16)
        return AudioUtils.frequency_spectrum(block, self.sample_rate)

    async def close(self) -> None:
        """Discard queued audio, forget track history and close the device."""
        with self._lock:
            self._clear_locked()
            self._emitted.clear()
            self._interrupted_tracks.clear()
            self._interrupted = False
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            logger.error(f"[AUDIO] Error closing playback device: {e}")
        logger.info("[AUDIO] Playback device closed")

    def _callback(self, outdata: np.ndarray, frames: int, time, status) -> None:
        """sounddevice callback; runs on the PortAudio thread."""
        if status:
            logger.warning(f"[AUDIO] Playback status: {status}")
        try:
            block = self.render(frames)
            outdata[:] = block.reshape(-1, 1)
        except Exception as e:
            logger.error(f"[AUDIO] Error in playback callback: {e}")
            outdata.fill(0)

    def _has_pending(self) -> bool:
        return any(buffers for buffers in self._tracks.values())

    def _clear_locked(self) -> None:
        self._tracks.clear()
        self._head = 0
        self._last_block = np.zeros(0, dtype=np.int16)
