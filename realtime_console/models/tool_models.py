"""
OpenAI Function Tool Models

Pydantic models for describing function tools in a type-safe way, plus the
in-process records the tool registry passes around: the definition with its
handler, an invocation decoded from a function_call item, and its result.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

ToolHandler = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]

# JSON-schema type name -> accepted Python types
_TYPE_CHECKS: Dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "object": lambda v: isinstance(v, dict),
    "array": lambda v: isinstance(v, list),
    "null": lambda v: v is None,
}


class ToolParameter(BaseModel):
    """Schema for a single tool parameter."""

    type: str
    description: Optional[str] = None
    enum: Optional[List[Any]] = None

    def model_dump(self, **kwargs):
        data = super().model_dump(**kwargs)
        # Remove fields that are None
        return {k: v for k, v in data.items() if v is not None}


class ToolParameters(BaseModel):
    """Model for tool parameters schema."""

    type: str = "object"
    properties: Dict[str, ToolParameter] = Field(default_factory=dict)
    required: Optional[List[str]] = None

    def model_dump(self, **kwargs):
        data = super().model_dump(**kwargs)
        data["properties"] = {
            key: param.model_dump() for key, param in self.properties.items()
        }
        # Remove required field if it's None to avoid validation errors
        if data.get("required") is None:
            data.pop("required", None)
        return data

    def validate_arguments(self, arguments: Any) -> List[str]:
        """Return every mismatch between ``arguments`` and this schema.

        Unknown fields are rejected rather than passed through.
        """
        if not isinstance(arguments, dict):
            return [f"arguments must be an object, got {type(arguments).__name__}"]

        problems = []
        for name in self.required or []:
            if name not in arguments:
                problems.append(f"missing required field '{name}'")

        for name, value in arguments.items():
            param = self.properties.get(name)
            if param is None:
                problems.append(f"unknown field '{name}'")
                continue
            check = _TYPE_CHECKS.get(param.type)
            if check is None:
                problems.append(f"field '{name}' has unsupported schema type '{param.type}'")
            elif not check(value):
                problems.append(
                    f"field '{name}' must be of type {param.type}, got {type(value).__name__}"
                )
            elif param.enum is not None and value not in param.enum:
                problems.append(f"field '{name}' must be one of {param.enum}, got {value!r}")
        return problems


class OpenAITool(BaseModel):
    """Model for OpenAI function tool definition."""

    type: str = "function"
    name: str
    description: str
    parameters: ToolParameters

    def model_dump(self, **kwargs):
        data = super().model_dump(**kwargs)
        data["parameters"] = self.parameters.model_dump()
        return data


@dataclass
class ToolDefinition:
    """A tool as registered by application code: schema plus handler."""

    name: str
    description: str
    parameters: ToolParameters
    handler: ToolHandler

    @classmethod
    def from_schema(cls, schema: Dict[str, Any], handler: ToolHandler) -> "ToolDefinition":
        """Build a definition from a plain ``{name, description, parameters}`` dict.

        A per-field ``"required": true`` is folded into the schema's
        ``required`` list.
        """
        parameters = dict(schema.get("parameters", {}))
        properties = parameters.get("properties", {})
        required = list(parameters.get("required") or [])
        for field_name, spec in properties.items():
            if spec.get("required") is True and field_name not in required:
                required.append(field_name)
        parameters["properties"] = {
            field_name: {k: v for k, v in spec.items() if k != "required"}
            for field_name, spec in properties.items()
        }
        parameters["required"] = required or None
        return cls(
            name=schema["name"],
            description=schema.get("description", ""),
            parameters=ToolParameters.model_validate(parameters),
            handler=handler,
        )

    def to_openai_tool(self) -> OpenAITool:
        return OpenAITool(name=self.name, description=self.description, parameters=self.parameters)


@dataclass
class ToolInvocation:
    """A request from the model to run a tool."""

    tool_name: str
    arguments: Any
    call_id: str
    item_id: Optional[str] = None

    @classmethod
    def from_raw(
        cls, tool_name: str, raw_arguments: str, call_id: str, item_id: Optional[str] = None
    ) -> "ToolInvocation":
        """Decode the JSON argument string of a function_call item.

        Undecodable text is kept as the raw string so validation reports it.
        """
        try:
            arguments = json.loads(raw_arguments) if raw_arguments else {}
        except json.JSONDecodeError:
            arguments = raw_arguments
        return cls(tool_name=tool_name, arguments=arguments, call_id=call_id, item_id=item_id)


@dataclass
class ToolResult:
    """Outcome of a tool invocation, ready to become a function_call_output."""

    call_id: str
    tool_name: str
    output: Any
    ok: bool = True
    item_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_output_string(self) -> str:
        return json.dumps(self.output)
