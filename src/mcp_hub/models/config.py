from pydantic import BaseModel, ConfigDict, Field

from mcp_hub.models.mcp_server_config import McpServerConfig


class McpConfig(BaseModel):
    """The registry document: server name to connection config.

    Serialized as ``{"mcpServers": {...}}`` which matches the Claude Desktop
    file format.
    """

    model_config = ConfigDict(populate_by_name=True)

    mcp_servers: dict[str, McpServerConfig] = Field(
        default_factory=dict, alias="mcpServers"
    )
