"""Shared pytest fixtures."""

from typing import Any
from unittest.mock import AsyncMock, Mock

import mcp
import pytest

from mcp_hub.client import McpClientManager


def make_tool(name: str, description: str | None = None, schema: dict | None = None) -> mcp.types.Tool:
    return mcp.types.Tool(
        name=name,
        description=description if description is not None else f"Description for {name}",
        inputSchema=schema if schema is not None else {"type": "object", "properties": {}},
    )


def text_result(*texts: str) -> mcp.types.CallToolResult:
    return mcp.types.CallToolResult(
        content=[mcp.types.TextContent(type="text", text=text) for text in texts]
    )


class FakeClient:
    """Stands in for a fastmcp Client connected to one server."""

    def __init__(self, tools: list[mcp.types.Tool] | None = None):
        self.tools = list(tools or [])
        self.connect_error: Exception | None = None
        self.list_error: Exception | None = None
        self.close_error: Exception | None = None
        self.message_handler: Any = None
        self.connected = False
        self.enter_count = 0
        self.list_calls = 0
        self.call_tool_mcp = AsyncMock(return_value=text_result("Tool result"))

    async def __aenter__(self) -> "FakeClient":
        if self.connect_error:
            raise self.connect_error
        self.enter_count += 1
        self.connected = True
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.connected = False
        if self.close_error:
            raise self.close_error

    async def list_tools(self) -> list[mcp.types.Tool]:
        self.list_calls += 1
        if self.list_error:
            raise self.list_error
        return list(self.tools)


class FakeServers:
    """Transport and client factories that never leave the process."""

    def __init__(self) -> None:
        self.clients: dict[str, FakeClient] = {}
        self.transports: dict[str, Mock] = {}
        self.handlers: dict[str, Any] = {}
        self.transport_errors: dict[str, Exception] = {}
        self.transport_calls: list[str] = []

    def add(self, name: str, tools: list[mcp.types.Tool] | None = None) -> FakeClient:
        client = FakeClient(tools)
        self.clients[name] = client
        return client

    def transport_factory(self, name: str, config: Any) -> Mock:
        self.transport_calls.append(name)
        if name in self.transport_errors:
            raise self.transport_errors[name]
        transport = Mock()
        transport.config = config
        transport.close = AsyncMock()
        self.transports[name] = transport
        return transport

    def client_factory(self, name: str, transport: Any, handler: Any) -> FakeClient:
        client = self.clients.setdefault(name, FakeClient())
        client.message_handler = handler
        self.handlers[name] = handler
        return client


@pytest.fixture
def fake_servers():
    return FakeServers()


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "config" / "mcp.json"


@pytest.fixture
def manager(fake_servers, config_path):
    """A manager wired to fake servers and a temporary registry."""
    return McpClientManager(
        config_path,
        transport_factory=fake_servers.transport_factory,
        client_factory=fake_servers.client_factory,
    )


@pytest.fixture
def events(manager):
    """Record every event the manager emits."""
    received = []
    manager.add_event_listener(received.append)
    return received


@pytest.fixture
def sample_config_data():
    """Sample registry covering every transport."""
    return {
        "mcpServers": {
            "filesystem": {
                "command": "npx",
                "args": ["-y", "@modelcontextprotocol/server-filesystem", "/tmp"],
                "env": {"DEBUG": "1"},
                "cwd": "/tmp",
            },
            "remote": {
                "type": "http",
                "url": "https://example.com/mcp",
                "headers": {"Authorization": "Bearer ${TOKEN}"},
            },
            "legacy": {
                "type": "sse",
                "url": "https://example.com/sse",
                "disabled": True,
            },
        }
    }
