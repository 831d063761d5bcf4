from .bundle_manifest import McpbManifest, UserConfigField, UserConfigValues
from .config import McpConfig
from .events import (
    McpClientEvent,
    McpClientEventListener,
    PromptsChangedEvent,
    ResourcesChangedEvent,
    ServerConnectedEvent,
    ServerDisconnectedEvent,
    ServerErrorEvent,
    ToolsChangedEvent,
)
from .mcp_server_config import (
    HttpServerConfig,
    McpServerConfig,
    SseServerConfig,
    StdioServerConfig,
)
from .server_info import McpServerInfo, McpToolInfo, ServerStatus

__all__ = [
    "McpConfig",
    "McpServerConfig",
    "StdioServerConfig",
    "HttpServerConfig",
    "SseServerConfig",
    "McpServerInfo",
    "McpToolInfo",
    "ServerStatus",
    "McpClientEvent",
    "McpClientEventListener",
    "ToolsChangedEvent",
    "ResourcesChangedEvent",
    "PromptsChangedEvent",
    "ServerConnectedEvent",
    "ServerDisconnectedEvent",
    "ServerErrorEvent",
    "McpbManifest",
    "UserConfigField",
    "UserConfigValues",
]
