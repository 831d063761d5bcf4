"""Events emitted by the connection manager to its listeners."""

from collections.abc import Callable
from typing import Literal

from pydantic import BaseModel


class ToolsChangedEvent(BaseModel):
    type: Literal["tools_changed"] = "tools_changed"
    server_name: str


class ResourcesChangedEvent(BaseModel):
    type: Literal["resources_changed"] = "resources_changed"
    server_name: str


class PromptsChangedEvent(BaseModel):
    type: Literal["prompts_changed"] = "prompts_changed"
    server_name: str


class ServerConnectedEvent(BaseModel):
    type: Literal["server_connected"] = "server_connected"
    server_name: str


class ServerDisconnectedEvent(BaseModel):
    type: Literal["server_disconnected"] = "server_disconnected"
    server_name: str


class ServerErrorEvent(BaseModel):
    type: Literal["server_error"] = "server_error"
    server_name: str
    error: str


McpClientEvent = (
    ToolsChangedEvent
    | ResourcesChangedEvent
    | PromptsChangedEvent
    | ServerConnectedEvent
    | ServerDisconnectedEvent
    | ServerErrorEvent
)

McpClientEventListener = Callable[[McpClientEvent], None]
