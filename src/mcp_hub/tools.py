"""Bridge from discovered MCP tools to callables an agent can use.

Every tool is exposed as ``mcp_<server>_<tool>`` so identically named tools on
different servers never collide. Calling a wrapped tool always produces a
string: failures come back as an error message instead of an exception, so a
single bad call does not abort the agent's turn.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from casual_llm import AssistantToolCall, Tool, ToolResultMessage
from pydantic import TypeAdapter
from pydantic_core import to_jsonable_python

from mcp_hub.client import McpClientManager
from mcp_hub.convert_tools import (
    build_validator,
    describe_parameters,
    tool_from_mcp,
    validate_arguments,
)
from mcp_hub.logging import get_logger
from mcp_hub.models.server_info import McpToolInfo

logger = get_logger("tools")


def tool_id(server_name: str, tool_name: str) -> str:
    """Composite identifier a tool is exposed under."""
    return f"mcp_{server_name}_{tool_name}"


def _field(value: Any, key: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(key)
    return getattr(value, key, None)


def _dump(value: Any) -> str:
    return json.dumps(
        to_jsonable_python(value, by_alias=True, exclude_none=True, fallback=str),
        indent=2,
    )


def extract_result_content(result: Any) -> str:
    """Normalize a tool call result into display text.

    Text parts of a ``CallToolResult`` are joined with newlines. Results with
    no text parts, and anything that is neither a result nor a string, are
    rendered as indented JSON.
    """
    content = _field(result, "content")
    if isinstance(content, list):
        texts = [
            _field(part, "text")
            for part in content
            if _field(part, "type") == "text" and isinstance(_field(part, "text"), str)
        ]
        if texts:
            return "\n".join(texts)
        return _dump(content)

    if isinstance(result, str):
        return result

    return _dump(result)


@dataclass
class McpTool:
    """A remote MCP tool wrapped as an async callable.

    Attributes:
        name: Composite identifier, ``mcp_<server>_<tool>``.
        server_name: Server the tool lives on.
        tool_name: The tool's name on that server.
        description: Tool description shown to the model.
        parameters: Human-readable parameter contract.
        validator: Validates arguments before they are sent.
        definition: casual-llm Tool definition for LLM providers.
        manager: Manager the call is routed through.
    """

    name: str
    server_name: str
    tool_name: str
    description: str
    parameters: str
    validator: TypeAdapter[Any]
    definition: Tool
    manager: McpClientManager

    async def execute(self, args: Mapping[str, Any] | None = None) -> str:
        try:
            arguments = validate_arguments(self.validator, dict(args or {}))
            result = await self.manager.call_tool(self.server_name, self.tool_name, arguments)
        except Exception as e:
            logger.warning(f"Error calling MCP tool '{self.tool_name}' on '{self.server_name}': {e}")
            return f'Error calling MCP tool "{self.tool_name}": {e}'

        logger.debug(f"Tool Call Result: {result}")
        return extract_result_content(result)

    async def __call__(self, **kwargs: Any) -> str:
        return await self.execute(kwargs)


def wrap_tool(tool_info: McpToolInfo, manager: McpClientManager) -> McpTool:
    """Wrap one discovered tool."""
    name = tool_id(tool_info.server_name, tool_info.name)
    return McpTool(
        name=name,
        server_name=tool_info.server_name,
        tool_name=tool_info.name,
        description=tool_info.description or f"Tool from MCP server: {tool_info.server_name}",
        parameters=describe_parameters(tool_info.input_schema),
        validator=build_validator(tool_info.input_schema, name),
        definition=tool_from_mcp(tool_info, name=name),
        manager=manager,
    )


def wrap_all(manager: McpClientManager) -> dict[str, McpTool]:
    """Wrap every tool of every connected server, keyed by composite identifier."""
    tools: dict[str, McpTool] = {}
    for tool_info in manager.get_all_tools():
        wrapped = wrap_tool(tool_info, manager)
        tools[wrapped.name] = wrapped
    return tools


def describe_all(manager: McpClientManager) -> dict[str, str]:
    """Descriptions of every connected tool, keyed by composite identifier."""
    return {
        tool_id(tool_info.server_name, tool_info.name): (
            tool_info.description or f"MCP tool from {tool_info.server_name}"
        )
        for tool_info in manager.get_all_tools()
    }


async def execute_tool_call(
    tools: Mapping[str, McpTool], tool_call: AssistantToolCall
) -> ToolResultMessage:
    """Run an LLM tool call against wrapped tools and build the result message."""
    tool_name = tool_call.function.name
    tool = tools.get(tool_name)

    if tool is None:
        logger.warning(f"Unknown MCP tool requested: {tool_name}")
        content = f'Unknown MCP tool "{tool_name}"'
    else:
        try:
            tool_args = json.loads(tool_call.function.arguments or "{}")
        except json.JSONDecodeError as e:
            content = f'Invalid arguments for MCP tool "{tool_name}": {e}'
        else:
            content = await tool.execute(tool_args)

    return ToolResultMessage(
        name=tool_name,
        tool_call_id=tool_call.id,
        content=content,
    )
