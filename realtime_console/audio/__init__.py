"""Microphone capture and speaker playback for the realtime console."""

from realtime_console.audio.capture import AudioCaptureChannel
from realtime_console.audio.playback import AudioPlaybackChannel
from realtime_console.audio.utils import AudioUtils

__all__ = ["AudioCaptureChannel", "AudioPlaybackChannel", "AudioUtils"]
