import logging
import os
from pathlib import Path

import pytest

from realtime_console.config import env_loader, settings
from realtime_console.config.env_loader import (
    load_application_config,
    load_audio_config,
    load_env_file,
    load_logging_config,
    load_openai_config,
    load_session_defaults,
    safe_convert,
    safe_string_or_none,
)
from realtime_console.config.logging_config import configure_logging
from realtime_console.config.models import ApplicationConfig, LoggingConfig, LogLevel, OpenAIConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in env_loader.ENV_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(env_loader, "_env_loaded", True)
    settings.set_config(None)
    yield
    settings.set_config(None)


def test_config_requires_explicit_env_loading(monkeypatch):
    monkeypatch.setattr(env_loader, "_env_loaded", False)
    with pytest.raises(RuntimeError):
        load_openai_config()


def test_load_env_file(tmp_path, monkeypatch):
    monkeypatch.setattr(env_loader, "_env_loaded", False)
    env_file = tmp_path / ".env"
    env_file.write_text("OPENAI_API_KEY=from-file\nVOICE=verse\n")

    try:
        load_env_file(str(env_file))

        assert env_loader._env_loaded is True
        assert load_openai_config().api_key == "from-file"
        assert load_session_defaults().voice == "verse"
    finally:
        os.environ.pop("OPENAI_API_KEY", None)
        os.environ.pop("VOICE", None)


def test_openai_defaults_and_url(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    config = load_openai_config()

    assert config.api_key == "sk-test"
    assert config.get_websocket_url() == f"wss://api.openai.com/v1/realtime?model={config.model}"
    assert config.get_headers()["Authorization"] == "Bearer sk-test"


def test_headers_require_api_key():
    with pytest.raises(ValueError):
        OpenAIConfig().get_headers()


def test_audio_config_from_env(monkeypatch):
    monkeypatch.setenv("AUDIO_SAMPLE_RATE", "16000")
    monkeypatch.setenv("AUDIO_FRAME_MS", "40")
    monkeypatch.setenv("AUDIO_INPUT_DEVICE", "  ")
    monkeypatch.setenv("AUDIO_DEVICE_SAMPLE_RATE", "48000")
    monkeypatch.setenv("AUDIO_QUEUE_SIZE", "not-a-number")

    config = load_audio_config()
    assert config.sample_rate == 16000
    assert config.frame_duration_ms == 40
    assert config.frame_samples == 640
    assert config.input_device is None
    assert config.device_sample_rate == 48000
    assert config.capture_queue_size == 50


def test_session_defaults_from_env(monkeypatch):
    monkeypatch.setenv("TURN_DETECTION", "SERVER_DETECTED")
    monkeypatch.setenv("SESSION_INSTRUCTIONS", "Be brief")

    defaults = load_session_defaults()
    assert defaults.turn_detection == "server_detected"
    assert defaults.instructions == "Be brief"


def test_logging_config_falls_back_to_info(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "chatty")
    assert load_logging_config().level is LogLevel.INFO


def test_application_config_validation(monkeypatch):
    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        load_application_config()

    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("TURN_DETECTION", "sometimes")
    with pytest.raises(ValueError, match="Turn detection"):
        load_application_config()

    monkeypatch.setenv("TURN_DETECTION", "manual")
    config = load_application_config()
    assert config.session.turn_detection == "manual"


def test_validate_reports_every_problem():
    config = ApplicationConfig()
    config.audio.sample_rate = 0
    config.audio.capture_queue_size = -1

    errors = config.validate()
    assert len(errors) == 3


def test_settings_singleton(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    first = settings.get_config()
    assert settings.get_config() is first

    custom = ApplicationConfig(openai=OpenAIConfig(api_key="custom"))
    settings.set_config(custom)
    assert settings.get_config() is custom
    assert settings.reload_config() is not custom


def test_safe_convert():
    assert safe_convert("42", int, 0) == 42
    assert safe_convert("x", int, 7) == 7
    assert safe_convert(None, float, 1.5) == 1.5
    assert safe_convert("TRUE", bool, False) is True
    assert safe_convert("logs", Path, Path(".")) == Path("logs")


def test_safe_string_or_none():
    assert safe_string_or_none(None) is None
    assert safe_string_or_none("   ") is None
    assert safe_string_or_none(" mic ") == "mic"


def test_configure_logging_does_not_stack_handlers(tmp_path):
    logger = configure_logging("test_logger", file_path=str(tmp_path))
    configure_logging("test_logger", file_path=str(tmp_path))

    assert len(logger.handlers) == 2
    assert logger.propagate is False
    assert (tmp_path / "realtime_console.log").exists()


def test_environment_info(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("TURN_DETECTION", "server_detected")

    info = env_loader.get_environment_info()
    assert info["openai_api_key_set"] is True
    assert info["turn_detection"] == "server_detected"
    assert info["environment_variables_loaded"] == 2


def test_configure_logging_from_logging_config(tmp_path):
    config = LoggingConfig(level=LogLevel.WARNING, log_dir=tmp_path / "custom", log_filename="console.log")
    logger = configure_logging("test_configured_logger", config=config)

    assert logger.level == logging.WARNING
    assert (tmp_path / "custom" / "console.log").exists()
    assert logger.handlers[1].maxBytes == config.max_log_size
