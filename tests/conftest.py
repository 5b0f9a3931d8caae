"""
Pytest configuration for the realtime console test suite.

Provides a fake sounddevice module, a fake realtime connection and a
controller wired to both, so session behavior can be tested without audio
hardware or network access.
"""

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pytest

from realtime_console.audio import capture as capture_module
from realtime_console.audio import playback as playback_module
from realtime_console.config.models import ApplicationConfig, OpenAIConfig
from realtime_console.exceptions import ConnectionError
from realtime_console.session_controller import SessionController


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


@pytest.fixture(autouse=True)
def skip_integration_when_no_api_key(request):
    if request.node.get_closest_marker("integration") and not os.environ.get("OPENAI_API_KEY"):
        pytest.skip("Skipping integration tests: OPENAI_API_KEY not set")


class FakeStream:
    """Stands in for sounddevice.InputStream / OutputStream."""

    def __init__(self, callback=None, **kwargs):
        self.callback = callback
        self.kwargs = kwargs
        self.active = False
        self.closed = False

    def start(self):
        self.active = True

    def stop(self):
        self.active = False

    def close(self):
        self.closed = True

    def push(self, samples: np.ndarray) -> None:
        """Feed one input block through the callback, as PortAudio would."""
        block = np.asarray(samples, dtype=np.int16).reshape(-1, 1)
        self.callback(block, len(block), None, None)


class FakeSoundDevice:
    """Minimal sounddevice module replacement."""

    class PortAudioError(Exception):
        pass

    def __init__(self):
        self.has_input = True
        self.has_output = True
        self.input_streams: List[FakeStream] = []
        self.output_streams: List[FakeStream] = []

    def query_devices(self, device=None, kind=None):
        if kind == "input" and not self.has_input:
            raise ValueError("No input device matching")
        if kind == "output" and not self.has_output:
            raise ValueError("No output device matching")
        return {"name": "fake", "default_samplerate": 24000.0}

    def InputStream(self, **kwargs):
        stream = FakeStream(**kwargs)
        self.input_streams.append(stream)
        return stream

    def OutputStream(self, **kwargs):
        stream = FakeStream(**kwargs)
        self.output_streams.append(stream)
        return stream


@pytest.fixture
def fake_sd(monkeypatch):
    """Install a FakeSoundDevice into both audio channel modules."""
    device = FakeSoundDevice()
    for module in (capture_module, playback_module):
        monkeypatch.setattr(module, "sd", device)
        monkeypatch.setattr(module, "AUDIO_AVAILABLE", True)
    return device


class FakeConnection:
    """Records every outbound call and lets tests emit inbound events."""

    def __init__(self):
        self.handlers: Dict[str, List[Any]] = {}
        self.calls: List[Tuple[Any, ...]] = []
        self.tools: Dict[str, Dict[str, Any]] = {}
        self.connected = False
        self.connect_error: Optional[Exception] = None
        self.cancel_error: Optional[Exception] = None

    def on(self, name, handler):
        self.handlers.setdefault(name, []).append(handler)

    def off(self, name, handler):
        self.handlers.get(name, []).remove(handler)

    async def emit(self, name, *args):
        for handler in self.handlers.get(name, []):
            result = handler(*args)
            if asyncio.iscoroutine(result):
                await result

    def calls_named(self, name: str) -> List[Tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]

    def is_connected(self) -> bool:
        return self.connected

    async def connect(self):
        self.calls.append(("connect",))
        if self.connect_error is not None:
            raise self.connect_error
        if self.connected:
            raise ConnectionError("Already connected")
        self.connected = True

    async def disconnect(self):
        if self.connected:
            self.calls.append(("disconnect",))
        self.connected = False

    async def update_session(self, config, tools=None):
        self.calls.append(("update_session", config.copy(), tools))

    def add_tool(self, schema):
        self.tools[schema["name"]] = schema

    async def send_user_message_content(self, parts):
        self.calls.append(("send_user_message_content", parts))

    async def send_function_call_output(self, call_id, output, item_id=None):
        self.calls.append(("send_function_call_output", call_id, output, item_id))

    async def append_input_audio(self, pcm):
        self.calls.append(("append_input_audio", pcm))

    async def create_response(self):
        self.calls.append(("create_response",))

    async def cancel_response(self, track_id=None, sample_offset=0):
        self.calls.append(("cancel_response", track_id, sample_offset))
        if self.cancel_error is not None:
            raise self.cancel_error

    async def delete_item(self, item_id):
        self.calls.append(("delete_item", item_id))


@pytest.fixture
def fake_connection():
    return FakeConnection()


@pytest.fixture
def app_config():
    return ApplicationConfig(openai=OpenAIConfig(api_key="test-key"))


@pytest.fixture
def controller(fake_sd, fake_connection, app_config):
    """SessionController on fake devices and a fake connection."""
    return SessionController(app_config, connection=fake_connection)


@pytest.fixture
def settle():
    """Let the controller's inbox, tool tasks and background sends run."""

    async def _settle(controller: SessionController, rounds: int = 10) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)
            inbox = controller._inbox
            if inbox is not None:
                await inbox.join()

    return _settle
