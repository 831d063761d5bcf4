"""Runtime state reported by the connection manager."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from mcp_hub.models.mcp_server_config import McpServerConfig

ServerStatus = Literal["disconnected", "connecting", "connected", "error"]


class McpToolInfo(BaseModel):
    """Snapshot of one tool exposed by a server."""

    server_name: str
    name: str
    description: str | None = None
    input_schema: dict[str, Any] = Field(default_factory=dict)


class McpServerInfo(BaseModel):
    """Connection state for a configured server.

    Attributes:
        name: Server name, matching the registry key.
        config: The config the connection was made with.
        status: Current connection status.
        error: Failure message, only set when ``status`` is ``"error"``.
        tools: Tools discovered on the server, only populated while connected.
    """

    name: str
    config: McpServerConfig
    status: ServerStatus = "disconnected"
    error: str | None = None
    tools: list[McpToolInfo] = Field(default_factory=list)
