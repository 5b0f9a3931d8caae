"""
Constants and configuration values used throughout the application.

This module defines constants that are shared by the session controller,
the audio channels and the realtime connection, providing a single place
to keep protocol and audio defaults consistent.
"""

# Logger name used throughout the application
LOGGER_NAME = "realtime_console"

# Realtime API defaults
DEFAULT_REALTIME_MODEL = "gpt-4o-realtime-preview-2024-12-17"
DEFAULT_REALTIME_BASE_URL = "wss://api.openai.com"
DEFAULT_TRANSCRIPTION_MODEL = "whisper-1"
DEFAULT_VOICE = "alloy"
DEFAULT_INSTRUCTIONS = "System settings:\nTool use: enabled.\n\nInstructions:\n- You are an artificial intelligence agent responsible for helping test realtime voice capabilities\n- Please make sure to respond with a helpful voice via audio\n- Be kind, helpful, and curteous\n- It is okay to ask the user questions\n- Use tools and functions you have available liberally, it is part of the training apparatus\n- Be open to exploration and conversation\n\nPersonality:\n- Be upbeat and genuine\n- Try speaking quickly as if excited\n"

# Audio constants (PCM16 mono, the only format the Realtime API streams for us)
DEFAULT_SAMPLE_RATE = 24000  # 24kHz
DEFAULT_CHANNELS = 1  # Mono
DEFAULT_BITS_PER_SAMPLE = 16  # 16-bit PCM
BYTES_PER_SAMPLE = DEFAULT_BITS_PER_SAMPLE // 8
DEFAULT_FRAME_DURATION_MS = 20  # capture frame length
DEFAULT_CAPTURE_QUEUE_SIZE = 50  # bounded device -> loop queue (1s at 20ms frames)
DEFAULT_OUTPUT_BLOCK_SIZE = 480  # 20ms at 24kHz
DEFAULT_OUTPUT_LATENCY = 0.1  # seconds

# Frequency analysis bands used by the visualization snapshot
VOICE_MIN_HZ = 32.0
VOICE_MAX_HZ = 2000.0
DEFAULT_FREQUENCY_BINS = 64

# Connection settings for the realtime WebSocket
CONNECTION_TIMEOUT = 30  # seconds
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks
WS_PING_INTERVAL = 20
WS_PING_TIMEOUT = 20

# Input audio kept while waiting for server VAD to report speech
SPEECH_LOOKBACK_MS = 5000
