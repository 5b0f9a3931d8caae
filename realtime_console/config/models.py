"""
Configuration models for the realtime console.

This module defines dataclasses for the different configuration domains,
providing type safety and validation for all application settings.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from realtime_console.config.constants import (
    DEFAULT_CAPTURE_QUEUE_SIZE,
    DEFAULT_CHANNELS,
    DEFAULT_FRAME_DURATION_MS,
    DEFAULT_INSTRUCTIONS,
    DEFAULT_OUTPUT_BLOCK_SIZE,
    DEFAULT_OUTPUT_LATENCY,
    DEFAULT_REALTIME_BASE_URL,
    DEFAULT_REALTIME_MODEL,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_TRANSCRIPTION_MODEL,
    DEFAULT_VOICE,
    CONNECTION_TIMEOUT,
)


class LogLevel(Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class OpenAIConfig:
    """OpenAI Realtime API configuration."""

    api_key: Optional[str] = None
    model: str = DEFAULT_REALTIME_MODEL
    base_url: str = DEFAULT_REALTIME_BASE_URL
    timeout: int = CONNECTION_TIMEOUT

    def get_websocket_url(self) -> str:
        """Get the OpenAI Realtime API WebSocket URL."""
        return f"{self.base_url}/v1/realtime?model={self.model}"

    def get_headers(self) -> Dict[str, str]:
        """Get headers for OpenAI API authentication."""
        if not self.api_key:
            raise ValueError("OpenAI API key is required")
        return {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }


@dataclass
class AudioConfig:
    """Audio device configuration shared by capture and playback."""

    sample_rate: int = DEFAULT_SAMPLE_RATE
    channels: int = DEFAULT_CHANNELS
    frame_duration_ms: int = DEFAULT_FRAME_DURATION_MS
    input_device: Optional[str] = None
    output_device: Optional[str] = None
    # Native rate of the capture device; None means "same as sample_rate"
    device_sample_rate: Optional[int] = None
    capture_queue_size: int = DEFAULT_CAPTURE_QUEUE_SIZE
    output_block_size: int = DEFAULT_OUTPUT_BLOCK_SIZE
    output_latency: float = DEFAULT_OUTPUT_LATENCY

    @property
    def frame_samples(self) -> int:
        """Number of samples in one capture frame at the protocol rate."""
        return self.sample_rate * self.frame_duration_ms // 1000


@dataclass
class SessionDefaults:
    """Initial session configuration pushed on every connect."""

    instructions: str = DEFAULT_INSTRUCTIONS
    turn_detection: str = "manual"
    transcription_model: str = DEFAULT_TRANSCRIPTION_MODEL
    voice: str = DEFAULT_VOICE


@dataclass
class LoggingConfig:
    """Logging configuration settings."""

    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_dir: Path = field(default_factory=lambda: Path("logs"))
    log_filename: str = "realtime_console.log"
    max_log_size: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5


@dataclass
class ApplicationConfig:
    """Master application configuration containing all domain configs."""

    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    session: SessionDefaults = field(default_factory=SessionDefaults)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.openai.api_key:
            errors.append(
                "OpenAI API key is required. Please set the OPENAI_API_KEY environment variable"
            )

        if self.audio.sample_rate <= 0:
            errors.append("Audio sample rate must be positive")

        if self.audio.frame_duration_ms <= 0:
            errors.append("Audio frame duration must be positive")

        if self.audio.capture_queue_size <= 0:
            errors.append("Capture queue size must be positive")

        if self.session.turn_detection not in ("manual", "server_detected"):
            errors.append(
                f"Turn detection must be 'manual' or 'server_detected', got '{self.session.turn_detection}'"
            )

        return errors
