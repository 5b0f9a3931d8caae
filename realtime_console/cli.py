"""
Realtime Console CLI

Command-line interface for talking to a Realtime API model through the local
microphone and speakers.

Keys (followed by Enter):
    <Enter>     start/stop push-to-talk capture (manual turn detection)
    m           switch between manual and server-detected turn detection
    t <text>    send a text message
    l           list conversation items
    e           show the event log
    q           disconnect and quit
"""

import argparse
import asyncio
import sys
from typing import Any, Dict, Optional

from realtime_console.config import get_config, get_environment_info, load_env_file
from realtime_console.config.env_loader import load_logging_config
from realtime_console.config.logging_config import apply_logging_config, configure_logging
from realtime_console.config.models import LoggingConfig, LogLevel
from realtime_console.exceptions import RealtimeConsoleError
from realtime_console.models.session_state import CaptureState, TurnDetection
from realtime_console.models.tool_models import ToolDefinition
from realtime_console.session_controller import SessionController

logger = configure_logging("cli")

ECHO_TOOL_SCHEMA = {
    "name": "echo",
    "description": "Echo the given text back. Use it when asked to test tool calls.",
    "parameters": {
        "type": "object",
        "properties": {"text": {"type": "string", "description": "Text to echo back"}},
        "required": ["text"],
    },
}


def echo_handler(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {"text": arguments["text"]}


def create_echo_tool() -> ToolDefinition:
    return ToolDefinition.from_schema(ECHO_TOOL_SCHEMA, echo_handler)


class RealtimeConsoleCLI:
    """Interactive terminal front end for a SessionController."""

    def __init__(self):
        self.controller: Optional[SessionController] = None

    def parse_args(self, argv=None) -> argparse.Namespace:
        """Parse command-line arguments."""
        parser = argparse.ArgumentParser(
            description="Talk to an OpenAI Realtime model from the terminal",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Push-to-talk session
  python -m realtime_console

  # Hands-free session with server-side turn detection
  python -m realtime_console --turn-detection server_detected

  # Custom instructions and env file
  python -m realtime_console --instructions "Answer in French" --env-file .env.local
            """,
        )
        parser.add_argument(
            "--turn-detection",
            choices=[mode.value for mode in TurnDetection],
            help="Who decides when the user has finished speaking (default: from TURN_DETECTION)",
        )
        parser.add_argument("--instructions", help="System instructions for the session")
        parser.add_argument("--env-file", help="Path to a .env file to load")
        parser.add_argument(
            "--log-level",
            choices=["DEBUG", "INFO", "WARNING", "ERROR"],
            help="Logging level (default: from LOG_LEVEL)",
        )
        return parser.parse_args(argv)

    def build_controller(self, args: argparse.Namespace) -> SessionController:
        config = get_config()
        if args.turn_detection:
            config.session.turn_detection = args.turn_detection
        if args.instructions:
            config.session.instructions = args.instructions

        controller = SessionController(config)
        controller.register_tool(create_echo_tool())
        return controller

    def setup_logging(self, args: argparse.Namespace) -> LoggingConfig:
        """Apply LOG_* settings, with --log-level on top, to every logger."""
        logging_config = load_logging_config()
        if args.log_level:
            logging_config.level = LogLevel(args.log_level)
        apply_logging_config(logging_config)
        return logging_config

    async def run(self, argv=None) -> int:
        """Run the CLI; returns the process exit code."""
        args = self.parse_args(argv)
        load_env_file(args.env_file)
        self.setup_logging(args)
        logger.debug(f"[CLI] Environment: {get_environment_info()}")

        try:
            self.controller = self.build_controller(args)
        except ValueError as e:
            logger.error(str(e))
            return 2

        try:
            await self.controller.connect()
        except RealtimeConsoleError as e:
            logger.error(f"Could not start session: {e}")
            return 1

        self._print_help()
        try:
            await self._input_loop()
        except (KeyboardInterrupt, EOFError):
            pass
        finally:
            await self.controller.disconnect()
        return 0

    async def _input_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while self.controller.is_connected:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            command = line.strip()
            if command == "q":
                break
            try:
                await self.handle_command(command)
            except RealtimeConsoleError as e:
                print(f"! {e}")

    async def handle_command(self, command: str) -> None:
        controller = self.controller
        if command == "":
            if controller.config.turn_detection is not TurnDetection.MANUAL:
                print("Turn detection is server-detected; just speak.")
            elif controller.capture_state is CaptureState.CAPTURING:
                await controller.end_manual_capture()
                print("[capture stopped, response requested]")
            else:
                await controller.begin_manual_capture()
                print("[capturing... press Enter to stop]")
        elif command == "m":
            current = controller.config.turn_detection
            target = (
                TurnDetection.MANUAL
                if current is TurnDetection.SERVER_DETECTED
                else TurnDetection.SERVER_DETECTED
            )
            await controller.set_turn_detection(target)
            print(f"[turn detection: {target.value}]")
        elif command.startswith("t "):
            await controller.send_text(command[2:].strip())
        elif command == "l":
            for item in controller.items():
                body = item.transcript or item.text or (item.tool.arguments if item.tool else "") or item.output or ""
                print(f"{item.role.value:>9} {item.type.value:<20} {item.status.value:<11} {body}")
        elif command == "e":
            for event in controller.events():
                suffix = f" (x{event.count})" if event.count > 1 else ""
                print(
                    f"{controller.event_log.format_time(event)} {event.source.value:>6} {event.event_type}{suffix}"
                )
        else:
            self._print_help()

    def _print_help(self) -> None:
        print(__doc__.split("Keys", 1)[1].split("\n", 1)[1])


async def main(argv=None) -> int:
    """Main entry point."""
    cli = RealtimeConsoleCLI()
    return await cli.run(argv)


def run_cli() -> None:
    """Console-script entry point."""
    sys.exit(asyncio.run(main()))
