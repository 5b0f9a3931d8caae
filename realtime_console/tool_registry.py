"""
Tool registry for Realtime API function calling.

This module maps tool names to their schemas and handlers, validates the
arguments the model sends, and runs the handlers.

Event Processing Workflow:
    1. **Registration**: application code registers a ToolDefinition; the
       registry's schemas are pushed to the session with ``session.update``
    2. **Validation**: a completed function_call item becomes a ToolInvocation
       whose arguments are checked against the tool's parameter schema
    3. **Execution**: the handler is awaited (or called, if synchronous)
    4. **Result**: the outcome is returned as a ToolResult; handler failures
       become a structured error payload instead of propagating

Usage Example:
    ```python
    registry = ToolRegistry()
    registry.register(ToolDefinition.from_schema(
        {"name": "echo", "description": "Echo text back",
         "parameters": {"type": "object",
                        "properties": {"text": {"type": "string"}},
                        "required": ["text"]}},
        lambda args: {"text": args["text"]},
    ))
    result = await registry.dispatch(ToolInvocation("echo", {"text": "hi"}, "call_1"))
    ```
"""

import asyncio
import json
import traceback
from typing import Any, Dict, List, Optional

from realtime_console.config.logging_config import configure_logging
from realtime_console.exceptions import (
    DuplicateToolError,
    SchemaValidationError,
    ToolHandlerError,
)
from realtime_console.models.tool_models import ToolDefinition, ToolInvocation, ToolResult

logger = configure_logging("tool_registry")


class ToolRegistry:
    """
    Registry of tools the model may call during a session.

    Attributes:
        tools: Dictionary mapping tool names to their definitions
    """

    def __init__(self):
        self.tools: Dict[str, ToolDefinition] = {}

    def register(self, definition: ToolDefinition) -> None:
        """
        Register a tool.

        Raises:
            DuplicateToolError: If a tool with the same name is already registered
        """
        if definition.name in self.tools:
            raise DuplicateToolError(definition.name)
        self.tools[definition.name] = definition
        logger.info(f"[TOOLS] Registered tool: {definition.name}")

    def unregister(self, name: str) -> bool:
        """
        Remove a tool from the registry.

        Returns:
            True if the tool was removed, False if it didn't exist
        """
        if name in self.tools:
            del self.tools[name]
            logger.info(f"[TOOLS] Unregistered tool: {name}")
            return True
        return False

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self.tools.get(name)

    def names(self) -> List[str]:
        return list(self.tools.keys())

    def __contains__(self, name: str) -> bool:
        return name in self.tools

    def __len__(self) -> int:
        return len(self.tools)

    def schemas(self) -> List[Dict[str, Any]]:
        """Function-tool definitions in the shape ``session.update`` expects."""
        return [definition.to_openai_tool().model_dump() for definition in self.tools.values()]

    def validate(self, invocation: ToolInvocation) -> ToolDefinition:
        """
        Check an invocation against its tool's schema.

        Returns:
            The matching ToolDefinition

        Raises:
            SchemaValidationError: If the tool is unknown or the arguments don't match
        """
        definition = self.tools.get(invocation.tool_name)
        if definition is None:
            raise SchemaValidationError(
                invocation.tool_name, [f"tool '{invocation.tool_name}' is not registered"]
            )
        problems = definition.parameters.validate_arguments(invocation.arguments)
        if problems:
            raise SchemaValidationError(invocation.tool_name, problems)
        return definition

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        """
        Validate and run a tool.

        Handler failures are caught and turned into a failed ToolResult.

        Raises:
            SchemaValidationError: If the arguments don't match the tool's schema
        """
        definition = self.validate(invocation)
        logger.info(
            f"[TOOLS] Executing {invocation.tool_name} (call_id={invocation.call_id}) with args: {invocation.arguments}"
        )

        try:
            output = await self._run_handler(definition, invocation.arguments)
        except ToolHandlerError as e:
            logger.error(f"[TOOLS] {e}")
            return ToolResult(
                call_id=invocation.call_id,
                tool_name=invocation.tool_name,
                output=e.to_payload(),
                ok=False,
                item_id=invocation.item_id,
            )

        logger.info(f"[TOOLS] {invocation.tool_name} executed successfully: {output}")
        return ToolResult(
            call_id=invocation.call_id,
            tool_name=invocation.tool_name,
            output=output,
            item_id=invocation.item_id,
        )

    async def dispatch(self, invocation: ToolInvocation) -> ToolResult:
        """Like execute(), but schema failures also come back as a failed ToolResult."""
        try:
            return await self.execute(invocation)
        except SchemaValidationError as e:
            logger.warning(f"[TOOLS] Rejected call {invocation.call_id}: {e}")
            return ToolResult(
                call_id=invocation.call_id,
                tool_name=invocation.tool_name,
                output=e.to_payload(),
                ok=False,
                item_id=invocation.item_id,
            )

    async def _run_handler(self, definition: ToolDefinition, arguments: Dict[str, Any]) -> Any:
        handler = definition.handler
        try:
            result = handler(arguments)
            if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
                result = await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"[TOOLS] Handler traceback: {traceback.format_exc()}")
            raise ToolHandlerError(definition.name, e) from e

        try:
            json.dumps(result)
        except (TypeError, ValueError) as e:
            raise ToolHandlerError(
                definition.name, e, message=f"result is not JSON-serializable ({e})"
            ) from e
        return result
