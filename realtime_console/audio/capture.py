"""
Audio capture channel.

Wraps a sounddevice input stream and turns its callback-driven frames into an
ordered, restartable sequence of fixed-duration PCM16 frames on the asyncio
event loop.

Frames cross from the PortAudio thread to the loop with
``loop.call_soon_threadsafe`` into a bounded queue. When the consumer falls
behind and the queue is full, new frames are dropped and counted rather than
blocking the audio thread.

Usage:
    capture = AudioCaptureChannel(AudioConfig())
    await capture.begin()
    await capture.record(lambda frame: print(len(frame)))
    ...
    await capture.pause()
    await capture.end()
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Callable, Optional

import numpy as np

from realtime_console.audio.utils import AudioUtils
from realtime_console.config.models import AudioConfig
from realtime_console.exceptions import DeviceUnavailable

try:
    import sounddevice as sd

    AUDIO_AVAILABLE = True
except (ImportError, OSError):
    # OSError: the package is installed but the PortAudio library is missing
    AUDIO_AVAILABLE = False
    sd = None

logger = logging.getLogger(__name__)

# Marks the end of a recording run in the frame queue
_END_OF_RUN = None


class AudioCaptureChannel:
    """
    Microphone capture producing PCM16 mono frames at the protocol sample rate.

    Lifecycle: ``begin()`` opens the device, ``record()`` / ``pause()`` start
    and stop delivery any number of times, ``end()`` closes the device.
    """

    def __init__(self, config: Optional[AudioConfig] = None):
        self.config = config or AudioConfig()
        self.device_sample_rate = self.config.device_sample_rate or self.config.sample_rate

        self._stream: Optional[Any] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._recording = False
        self._last_frame = np.zeros(0, dtype=np.int16)

        # Statistics
        self.frames_captured = 0
        self.frames_dropped = 0

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    @property
    def recording(self) -> bool:
        return self._recording

    @property
    def status(self) -> str:
        if self._stream is None:
            return "ended"
        return "recording" if self._recording else "paused"

    async def begin(self) -> None:
        """Open the input device.

        Raises:
            DeviceUnavailable: If there is no audio backend or no input device
        """
        if self._stream is not None:
            logger.warning("[AUDIO] Capture device already open")
            return

        if not AUDIO_AVAILABLE or sd is None:
            raise DeviceUnavailable("input", "sounddevice/PortAudio is not available")

        try:
            sd.query_devices(self.config.input_device, kind="input")
        except (ValueError, sd.PortAudioError) as e:
            raise DeviceUnavailable("input", str(e)) from e

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self.config.capture_queue_size)
        blocksize = self.device_sample_rate * self.config.frame_duration_ms // 1000

        try:
            stream = sd.InputStream(
                samplerate=self.device_sample_rate,
                channels=self.config.channels,
                dtype="int16",
                blocksize=blocksize,
                device=self.config.input_device,
                callback=self._callback,
            )
            stream.start()
        except (ValueError, sd.PortAudioError) as e:
            raise DeviceUnavailable("input", str(e)) from e

        self._stream = stream
        logger.info(
            f"[AUDIO] Capture device opened ({self.device_sample_rate}Hz, {self.config.frame_duration_ms}ms frames)"
        )

    async def record(self, on_frame: Optional[Callable[[bytes], Any]] = None) -> None:
        """Start delivering frames.

        With ``on_frame`` every frame is passed to it, in order, until
        ``pause()``. Without it, consume the frames through ``frames()``.
        """
        if self._stream is None:
            raise DeviceUnavailable("input", "capture device is not open; call begin() first")
        if self._recording:
            logger.warning("[AUDIO] Recording already active")
            return

        self._drain_queue()
        self._recording = True
        if on_frame is not None:
            self._pump_task = asyncio.create_task(self._pump(on_frame))
        logger.info("[AUDIO] Recording started")

    async def frames(self) -> AsyncIterator[bytes]:
        """Frames of the current recording run, ending when it is paused."""
        if self._queue is None:
            return
        while True:
            frame = await self._queue.get()
            if frame is _END_OF_RUN:
                return
            yield frame

    async def pause(self) -> None:
        """Stop delivery, keeping the device open.

        Frames captured before the pause are handed to the sink before this
        returns.
        """
        if not self._recording:
            return
        self._recording = False
        self._put_end_of_run()

        if self._pump_task is not None:
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass
            self._pump_task = None
        self._last_frame = np.zeros(0, dtype=np.int16)
        logger.info("[AUDIO] Recording paused")

    async def end(self) -> None:
        """Stop recording and close the device."""
        await self.pause()
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            logger.error(f"[AUDIO] Error closing capture device: {e}")
        self._queue = None
        logger.info("[AUDIO] Capture device closed")

    def get_frequencies(self) -> np.ndarray:
        """Spectrum of the latest frame, for visualization only."""
        samples = self._last_frame if self._recording else np.zeros(0, dtype=np.int16)
        return AudioUtils.frequency_spectrum(samples, self.config.sample_rate)

    def _callback(self, indata: np.ndarray, frames: int, time, status) -> None:
        """sounddevice callback; runs on the PortAudio thread."""
        try:
            if status:
                logger.warning(f"[AUDIO] Capture status: {status}")
            if not self._recording or self._loop is None:
                return
            samples = np.array(indata, dtype=np.int16, copy=True)
            if samples.ndim > 1:
                samples = samples[:, 0]
            self._loop.call_soon_threadsafe(self._enqueue, samples)
        except Exception as e:
            logger.error(f"[AUDIO] Error in capture callback: {e}")

    def _enqueue(self, samples: np.ndarray) -> None:
        if not self._recording or self._queue is None:
            return
        if self.device_sample_rate != self.config.sample_rate:
            samples = AudioUtils.resample(samples, self.device_sample_rate, self.config.sample_rate)
        self._last_frame = samples
        try:
            self._queue.put_nowait(samples.tobytes())
            self.frames_captured += 1
        except asyncio.QueueFull:
            self.frames_dropped += 1
            logger.warning("[AUDIO] Capture queue full, dropping frame")

    async def _pump(self, on_frame: Callable[[bytes], Any]) -> None:
        async for frame in self.frames():
            try:
                result = on_frame(frame)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"[AUDIO] Error in frame sink: {e}")

    def _put_end_of_run(self) -> None:
        if self._queue is None:
            return
        if self._queue.full():
            self._queue.get_nowait()
            self.frames_dropped += 1
            logger.warning("[AUDIO] Capture queue full at pause, dropped oldest frame")
        self._queue.put_nowait(_END_OF_RUN)

    def _drain_queue(self) -> None:
        if self._queue is None:
            return
        while not self._queue.empty():
            self._queue.get_nowait()
