"""
Environment variable loader for the realtime console configuration.

This module handles loading configuration from environment variables,
with type conversion, validation, and fallback to defaults.

Environment variables must be explicitly loaded using load_env_file() before
accessing any configuration functions.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, cast

from dotenv import load_dotenv

from realtime_console.config.constants import (
    DEFAULT_CAPTURE_QUEUE_SIZE,
    DEFAULT_FRAME_DURATION_MS,
    DEFAULT_INSTRUCTIONS,
    DEFAULT_REALTIME_BASE_URL,
    DEFAULT_REALTIME_MODEL,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_TRANSCRIPTION_MODEL,
    DEFAULT_VOICE,
    CONNECTION_TIMEOUT,
)
from realtime_console.config.models import (
    ApplicationConfig,
    AudioConfig,
    LoggingConfig,
    LogLevel,
    OpenAIConfig,
    SessionDefaults,
)

# Every environment variable the loaders read
ENV_VARIABLES = (
    "OPENAI_API_KEY",
    "OPENAI_REALTIME_MODEL",
    "OPENAI_BASE_URL",
    "OPENAI_TIMEOUT",
    "AUDIO_SAMPLE_RATE",
    "AUDIO_FRAME_MS",
    "AUDIO_INPUT_DEVICE",
    "AUDIO_OUTPUT_DEVICE",
    "AUDIO_DEVICE_SAMPLE_RATE",
    "AUDIO_QUEUE_SIZE",
    "SESSION_INSTRUCTIONS",
    "TURN_DETECTION",
    "TRANSCRIPTION_MODEL",
    "VOICE",
    "LOG_LEVEL",
    "LOG_DIR",
    "LOG_FILENAME",
)

# Track if environment variables have been loaded
_env_loaded = False


def load_env_file(env_file: Optional[str] = None) -> None:
    """Load environment variables from a .env file.

    This function must be called before accessing any configuration functions.

    Args:
        env_file: Path to the .env file. If None, uses default behavior.
    """
    global _env_loaded
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()
    _env_loaded = True


def _check_env_loaded() -> None:
    """Check if environment variables have been loaded, raise error if not."""
    if not _env_loaded:
        raise RuntimeError(
            "Environment variables not loaded. Call load_env_file() before accessing configuration."
        )


T = TypeVar("T")


def safe_convert(value: Optional[str], target_type: Type[T], default: T) -> T:
    """Safely convert environment variable string to target type."""
    if value is None:
        return default

    try:
        if target_type == bool:
            return cast(T, value.lower() == "true")
        elif target_type == int:
            return cast(T, int(value))
        elif target_type == float:
            return cast(T, float(value))
        elif target_type == str:
            return cast(T, value)
        elif target_type == Path:
            return cast(T, Path(value))
        elif callable(target_type):
            return cast(T, target_type(value))  # type: ignore
        else:
            return default
    except (ValueError, TypeError):
        return default


def safe_string_or_none(value: Optional[str]) -> Optional[str]:
    """Convert environment variable to string or None if empty."""
    if value is None or value.strip() == "":
        return None
    return value.strip()


def load_openai_config() -> OpenAIConfig:
    """Load OpenAI configuration from environment variables."""
    _check_env_loaded()

    return OpenAIConfig(
        api_key=safe_string_or_none(os.getenv("OPENAI_API_KEY")),
        model=os.getenv("OPENAI_REALTIME_MODEL", DEFAULT_REALTIME_MODEL),
        base_url=os.getenv("OPENAI_BASE_URL", DEFAULT_REALTIME_BASE_URL),
        timeout=safe_convert(os.getenv("OPENAI_TIMEOUT"), int, CONNECTION_TIMEOUT),
    )


def load_audio_config() -> AudioConfig:
    """Load audio configuration from environment variables."""
    _check_env_loaded()

    return AudioConfig(
        sample_rate=safe_convert(os.getenv("AUDIO_SAMPLE_RATE"), int, DEFAULT_SAMPLE_RATE),
        frame_duration_ms=safe_convert(
            os.getenv("AUDIO_FRAME_MS"), int, DEFAULT_FRAME_DURATION_MS
        ),
        input_device=safe_string_or_none(os.getenv("AUDIO_INPUT_DEVICE")),
        output_device=safe_string_or_none(os.getenv("AUDIO_OUTPUT_DEVICE")),
        device_sample_rate=safe_convert(os.getenv("AUDIO_DEVICE_SAMPLE_RATE"), int, None),
        capture_queue_size=safe_convert(
            os.getenv("AUDIO_QUEUE_SIZE"), int, DEFAULT_CAPTURE_QUEUE_SIZE
        ),
    )


def load_session_defaults() -> SessionDefaults:
    """Load initial session settings from environment variables."""
    _check_env_loaded()

    return SessionDefaults(
        instructions=os.getenv("SESSION_INSTRUCTIONS", DEFAULT_INSTRUCTIONS),
        turn_detection=os.getenv("TURN_DETECTION", "manual").lower(),
        transcription_model=os.getenv("TRANSCRIPTION_MODEL", DEFAULT_TRANSCRIPTION_MODEL),
        voice=os.getenv("VOICE", DEFAULT_VOICE),
    )


def load_logging_config() -> LoggingConfig:
    """Load logging configuration from environment variables."""
    _check_env_loaded()

    level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    try:
        level = LogLevel(level_str)
    except ValueError:
        level = LogLevel.INFO

    return LoggingConfig(
        level=level,
        log_dir=Path(os.getenv("LOG_DIR", "logs")),
        log_filename=os.getenv("LOG_FILENAME", "realtime_console.log"),
    )


def load_application_config() -> ApplicationConfig:
    """Load complete application configuration from environment variables."""
    _check_env_loaded()

    config = ApplicationConfig(
        openai=load_openai_config(),
        audio=load_audio_config(),
        session=load_session_defaults(),
        logging=load_logging_config(),
    )

    validation_errors = config.validate()
    if validation_errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(
            f"  - {error}" for error in validation_errors
        )
        raise ValueError(error_msg)

    return config


def get_environment_info() -> Dict[str, Any]:
    """Get information about current environment variables for debugging."""
    _check_env_loaded()

    return {
        "environment_variables_loaded": len([name for name in ENV_VARIABLES if name in os.environ]),
        "dotenv_loaded": Path(".env").exists(),
        "openai_api_key_set": bool(os.getenv("OPENAI_API_KEY")),
        "turn_detection": os.getenv("TURN_DETECTION", "manual"),
    }
