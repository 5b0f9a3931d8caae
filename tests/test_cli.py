import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from realtime_console.cli import RealtimeConsoleCLI, create_echo_tool, echo_handler
from realtime_console.config import env_loader
from realtime_console.config.logging_config import apply_logging_config
from realtime_console.config.models import ApplicationConfig, LoggingConfig, LogLevel, OpenAIConfig
from realtime_console.exceptions import ConnectionError
from realtime_console.models.session_state import CaptureState, TurnDetection


def test_echo_handler():
    assert echo_handler({"text": "hi"}) == {"text": "hi"}


def test_echo_tool_schema():
    tool = create_echo_tool().to_openai_tool().model_dump()
    assert tool["name"] == "echo"
    assert tool["parameters"]["required"] == ["text"]


def test_parse_args():
    args = RealtimeConsoleCLI().parse_args(
        ["--turn-detection", "server_detected", "--instructions", "Be brief", "--log-level", "DEBUG"]
    )
    assert args.turn_detection == "server_detected"
    assert args.instructions == "Be brief"
    assert args.log_level == "DEBUG"
    assert args.env_file is None


def test_parse_args_rejects_unknown_mode():
    with pytest.raises(SystemExit):
        RealtimeConsoleCLI().parse_args(["--turn-detection", "sometimes"])


def test_build_controller_applies_overrides():
    cli = RealtimeConsoleCLI()
    config = ApplicationConfig(openai=OpenAIConfig(api_key="sk-test"))
    args = cli.parse_args(["--turn-detection", "server_detected", "--instructions", "Be brief"])

    with patch("realtime_console.cli.get_config", return_value=config):
        controller = cli.build_controller(args)

    assert controller.config.turn_detection is TurnDetection.SERVER_DETECTED
    assert controller.config.instructions == "Be brief"
    assert "echo" in controller.tools


@pytest.mark.asyncio
async def test_run_returns_error_when_connect_fails():
    cli = RealtimeConsoleCLI()
    controller = MagicMock()
    controller.connect = AsyncMock(side_effect=ConnectionError("connection refused"))

    with patch("realtime_console.cli.load_env_file"), patch(
        "realtime_console.cli.get_environment_info", return_value={}
    ), patch.object(cli, "setup_logging"), patch.object(cli, "build_controller", return_value=controller):
        assert await cli.run([]) == 1


@pytest.mark.asyncio
async def test_enter_toggles_manual_capture():
    cli = RealtimeConsoleCLI()
    controller = MagicMock()
    controller.config.turn_detection = TurnDetection.MANUAL
    controller.capture_state = CaptureState.IDLE
    controller.begin_manual_capture = AsyncMock()
    controller.end_manual_capture = AsyncMock()
    cli.controller = controller

    await cli.handle_command("")
    controller.begin_manual_capture.assert_awaited_once()

    controller.capture_state = CaptureState.CAPTURING
    await cli.handle_command("")
    controller.end_manual_capture.assert_awaited_once()


@pytest.mark.asyncio
async def test_mode_command_switches_turn_detection():
    cli = RealtimeConsoleCLI()
    controller = MagicMock()
    controller.config.turn_detection = TurnDetection.MANUAL
    controller.set_turn_detection = AsyncMock()
    cli.controller = controller

    await cli.handle_command("m")
    controller.set_turn_detection.assert_awaited_once_with(TurnDetection.SERVER_DETECTED)


@pytest.mark.asyncio
async def test_text_command_sends_text():
    cli = RealtimeConsoleCLI()
    controller = MagicMock()
    controller.send_text = AsyncMock()
    cli.controller = controller

    await cli.handle_command("t hello there")
    controller.send_text.assert_awaited_once_with("hello there")


def test_log_level_reaches_every_module_logger(tmp_path, monkeypatch):
    monkeypatch.setattr(env_loader, "_env_loaded", True)
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    monkeypatch.setenv("LOG_FILENAME", "console.log")
    cli = RealtimeConsoleCLI()

    try:
        logging_config = cli.setup_logging(cli.parse_args(["--log-level", "ERROR"]))

        assert logging_config.level is LogLevel.ERROR
        for name in ("session_controller", "realtime_connection", "tool_registry", "cli", "realtime_console"):
            assert logging.getLogger(name).level == logging.ERROR
        assert (tmp_path / "console.log").exists()
    finally:
        apply_logging_config(LoggingConfig())
