"""
Audio utilities shared by the capture and playback channels.

PCM16 conversions, base64 transport encoding, resampling and the frequency
snapshot used for visualization.
"""

import base64
import logging
from math import gcd
from typing import Union

import numpy as np
from scipy import signal

from realtime_console.config.constants import (
    DEFAULT_FREQUENCY_BINS,
    VOICE_MAX_HZ,
    VOICE_MIN_HZ,
)

logger = logging.getLogger(__name__)

PCMInput = Union[bytes, bytearray, memoryview, np.ndarray]


class AudioUtils:
    """Static helpers for PCM16 mono audio."""

    @staticmethod
    def to_int16(audio: PCMInput) -> np.ndarray:
        """Return ``audio`` as a flat int16 array.

        Float input is treated as [-1.0, 1.0] and scaled.
        """
        if isinstance(audio, np.ndarray):
            if audio.dtype == np.int16:
                return audio.reshape(-1)
            if np.issubdtype(audio.dtype, np.floating):
                clipped = np.clip(audio.reshape(-1), -1.0, 1.0)
                return (clipped * 32767).astype(np.int16)
            return audio.reshape(-1).astype(np.int16)
        data = bytes(audio)
        if len(data) % 2:
            logger.warning(f"[AUDIO] Dropping trailing odd byte from {len(data)}-byte PCM16 buffer")
            data = data[:-1]
        return np.frombuffer(data, dtype=np.int16)

    @staticmethod
    def to_bytes(audio: PCMInput) -> bytes:
        return AudioUtils.to_int16(audio).tobytes()

    @staticmethod
    def convert_to_base64(audio_data: bytes) -> str:
        """Convert PCM bytes to base64 string for JSON transport."""
        return base64.b64encode(audio_data).decode("utf-8")

    @staticmethod
    def convert_from_base64(base64_data: str) -> bytes:
        """Convert base64 string to PCM bytes."""
        return base64.b64decode(base64_data)

    @staticmethod
    def resample(samples: np.ndarray, from_rate: int, to_rate: int) -> np.ndarray:
        """Resample int16 mono samples with a polyphase filter."""
        if from_rate == to_rate or samples.size == 0:
            return samples
        factor = gcd(from_rate, to_rate)
        up, down = to_rate // factor, from_rate // factor
        resampled = signal.resample_poly(samples.astype(np.float32), up, down)
        return np.clip(resampled, -32768, 32767).astype(np.int16)

    @staticmethod
    def frequency_spectrum(
        samples: np.ndarray,
        sample_rate: int,
        min_hz: float = VOICE_MIN_HZ,
        max_hz: float = VOICE_MAX_HZ,
        bins: int = DEFAULT_FREQUENCY_BINS,
    ) -> np.ndarray:
        """
        Magnitude spectrum of ``samples`` between ``min_hz`` and ``max_hz``.

        Returns ``bins`` values normalized to [0, 1]; silence or an empty
        buffer gives all zeros.
        """
        if samples.size == 0:
            return np.zeros(bins, dtype=np.float32)

        windowed = samples.astype(np.float32) / 32768.0 * np.hanning(samples.size)
        magnitudes = np.abs(np.fft.rfft(windowed))
        freqs = np.fft.rfftfreq(samples.size, d=1.0 / sample_rate)
        band = magnitudes[(freqs >= min_hz) & (freqs <= max_hz)]
        if band.size == 0:
            return np.zeros(bins, dtype=np.float32)

        # Average neighbouring FFT bins down to the requested resolution
        edges = np.linspace(0, band.size, bins + 1).astype(int)
        values = np.array(
            [band[a:b].mean() if b > a else band[min(a, band.size - 1)] for a, b in zip(edges[:-1], edges[1:])],
            dtype=np.float32,
        )
        peak = values.max()
        if peak <= 0:
            return np.zeros(bins, dtype=np.float32)
        return values / peak
