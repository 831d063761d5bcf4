"""Connection manager for MCP servers.

Acts as an MCP host: each configured server gets its own fastmcp ``Client``
which performs the capability handshake, discovers tools, routes tool calls
and receives list-changed notifications. Connection failures are captured in
the server's state rather than raised, so one broken server never stops the
others from coming up.
"""

import asyncio
import itertools
from collections.abc import Callable, Coroutine
from contextlib import AsyncExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import mcp
from fastmcp import Client
from fastmcp.client.messages import MessageHandler
from fastmcp.client.transports import ClientTransport

from mcp_hub.config import expand_server_config, load_config
from mcp_hub.logging import get_logger
from mcp_hub.models.events import (
    McpClientEvent,
    McpClientEventListener,
    PromptsChangedEvent,
    ResourcesChangedEvent,
    ServerConnectedEvent,
    ServerDisconnectedEvent,
    ServerErrorEvent,
    ToolsChangedEvent,
)
from mcp_hub.models.mcp_server_config import McpServerConfig
from mcp_hub.models.server_info import McpServerInfo, McpToolInfo, ServerStatus
from mcp_hub.transport import build_transport

logger = get_logger("client")

CLIENT_VERSION = "0.1.0"

TransportFactory = Callable[[str, McpServerConfig], ClientTransport]
ClientFactory = Callable[[str, ClientTransport, MessageHandler], Client[Any]]


class ServerNotConnectedError(RuntimeError):
    """Raised when calling a tool on a server without a live connection."""

    pass


def create_client(
    name: str, transport: ClientTransport, message_handler: MessageHandler
) -> Client[Any]:
    """Build the fastmcp client used for one server connection."""
    return Client(
        transport,
        message_handler=message_handler,
        client_info=mcp.types.Implementation(name=f"mcp-hub-{name}", version=CLIENT_VERSION),
    )


class _NotificationHandler(MessageHandler):
    """Forwards list-changed notifications for one session to the manager.

    Runs inside the transport's read loop, so it only schedules work.
    """

    def __init__(self, manager: "McpClientManager", server_name: str, generation: int):
        super().__init__()
        self._manager = manager
        self._server_name = server_name
        self._generation = generation

    async def on_tool_list_changed(self, message: mcp.types.ToolListChangedNotification) -> None:
        self._manager._schedule(
            self._manager._handle_tools_changed(self._server_name, self._generation)
        )

    async def on_resource_list_changed(
        self, message: mcp.types.ResourceListChangedNotification
    ) -> None:
        self._manager._schedule(
            self._manager._handle_list_changed(
                ResourcesChangedEvent(server_name=self._server_name), self._generation
            )
        )

    async def on_prompt_list_changed(
        self, message: mcp.types.PromptListChangedNotification
    ) -> None:
        self._manager._schedule(
            self._manager._handle_list_changed(
                PromptsChangedEvent(server_name=self._server_name), self._generation
            )
        )


@dataclass
class _Session:
    info: McpServerInfo
    generation: int
    client: Client[Any] | None = None
    transport: ClientTransport | None = None
    stack: AsyncExitStack | None = None
    was_connected: bool = False


class McpClientManager:
    """Owns the connections to every configured MCP server.

    Each server name has its own lock: connect, disconnect and
    notification-driven refreshes for a server run one at a time, while
    different servers proceed independently. Every session carries a
    generation number so work scheduled for a torn-down session is dropped.
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        *,
        transport_factory: TransportFactory = build_transport,
        client_factory: ClientFactory = create_client,
    ):
        self.config_path = config_path
        self._transport_factory = transport_factory
        self._client_factory = client_factory
        self._sessions: dict[str, _Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._listeners: list[McpClientEventListener] = []
        self._generations = itertools.count(1)
        self._pending: set[asyncio.Task[None]] = set()

    async def __aenter__(self) -> "McpClientManager":
        await self.connect_all()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect_all()

    # Events

    def add_event_listener(self, listener: McpClientEventListener) -> Callable[[], None]:
        """Subscribe to manager events. Returns a function that unsubscribes."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: McpClientEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Error in MCP event listener for {event.type}")

    # Lifecycle

    def _lock(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    async def connect_all(self) -> list[McpServerInfo]:
        """Connect to every server in the registry, in order.

        Disabled servers are recorded as disconnected without being started.
        """
        config = load_config(self.config_path)
        results: list[McpServerInfo] = []

        for name, server_config in config.mcp_servers.items():
            if server_config.disabled:
                async with self._lock(name):
                    await self._disconnect_locked(name)
                    session = _Session(
                        info=McpServerInfo(name=name, config=server_config),
                        generation=next(self._generations),
                    )
                    self._sessions[name] = session
                logger.info(f"Skipping disabled MCP server '{name}'")
                results.append(session.info.model_copy(deep=True))
                continue

            results.append(await self.connect(name, server_config))

        return results

    async def connect(self, name: str, server_config: McpServerConfig) -> McpServerInfo:
        """Connect to one server, replacing any existing session for ``name``.

        Never raises for connection problems; a failed connection is returned
        with ``status == "error"`` and the failure message.
        """
        async with self._lock(name):
            await self._disconnect_locked(name)

            generation = next(self._generations)
            session = _Session(
                info=McpServerInfo(name=name, config=server_config, status="connecting"),
                generation=generation,
            )
            self._sessions[name] = session

            try:
                expanded = expand_server_config(session.info.config)
                session.info.config = expanded

                session.transport = self._transport_factory(name, expanded)
                # The handler exists before the handshake so early notifications are seen
                handler = _NotificationHandler(self, name, generation)
                client = self._client_factory(name, session.transport, handler)

                session.stack = AsyncExitStack()
                await session.stack.enter_async_context(client)
                session.client = client

                tools = await self._list_tools(name, client)
            except Exception as e:
                message = str(e) or type(e).__name__
                logger.error(f"Failed to connect to MCP server '{name}': {message}")
                await self._close_session(session)
                session.info.status = "error"
                session.info.error = message
                session.info.tools = []
                self._emit(ServerErrorEvent(server_name=name, error=message))
                return session.info.model_copy(deep=True)

            session.info.tools = tools
            session.info.status = "connected"
            session.info.error = None
            session.was_connected = True
            logger.info(f"Connected to MCP server '{name}' with {len(tools)} tools")

            self._emit(ServerConnectedEvent(server_name=name))
            return session.info.model_copy(deep=True)

    async def _list_tools(self, name: str, client: Client[Any]) -> list[McpToolInfo]:
        tools = await client.list_tools()
        return [
            McpToolInfo(
                server_name=name,
                name=tool.name,
                description=tool.description,
                input_schema=dict(tool.inputSchema or {}),
            )
            for tool in tools
        ]

    async def _close_session(self, session: _Session) -> None:
        """Close the client then the transport, logging and swallowing failures."""
        name = session.info.name

        if session.stack is not None:
            try:
                await session.stack.aclose()
            except Exception as e:
                logger.warning(f"Error closing MCP client '{name}': {e}")

        if session.transport is not None:
            try:
                await session.transport.close()
            except Exception as e:
                logger.warning(f"Error closing MCP transport '{name}': {e}")

        session.client = None
        session.transport = None
        session.stack = None

    async def disconnect(self, name: str) -> None:
        """Disconnect from a server. Unknown or already disconnected names are a no-op."""
        async with self._lock(name):
            await self._disconnect_locked(name)

    async def _disconnect_locked(self, name: str) -> None:
        session = self._sessions.get(name)
        if session is None:
            return

        was_live = session.was_connected
        await self._close_session(session)

        # Invalidate work scheduled for this session
        session.generation = next(self._generations)
        session.was_connected = False
        session.info.status = "disconnected"
        session.info.error = None
        session.info.tools = []

        if was_live:
            logger.info(f"Disconnected from MCP server '{name}'")
            self._emit(ServerDisconnectedEvent(server_name=name))

    async def disconnect_all(self) -> None:
        """Disconnect every known server; one failure does not stop the rest."""
        names = list(self._sessions)
        results = await asyncio.gather(
            *(self.disconnect(name) for name in names), return_exceptions=True
        )
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.error(f"Failed to disconnect MCP server '{name}': {result}")

    async def reload(self) -> list[McpServerInfo]:
        """Disconnect everything and reconnect from the current registry."""
        await self.disconnect_all()
        return await self.connect_all()

    # Tools

    async def refresh_tools(self, name: str) -> list[McpToolInfo]:
        """Re-list tools for a connected server.

        Returns the previously known list when the server is not connected or
        the listing fails.
        """
        async with self._lock(name):
            tools = await self._refresh_locked(name)
        return tools or []

    async def _refresh_locked(
        self, name: str, generation: int | None = None
    ) -> list[McpToolInfo] | None:
        session = self._sessions.get(name)
        if session is None:
            return []

        if generation is not None and session.generation != generation:
            logger.debug(f"Dropping stale tool refresh for MCP server '{name}'")
            return None

        if session.client is None or session.info.status != "connected":
            return [tool.model_copy() for tool in session.info.tools]

        try:
            tools = await self._list_tools(name, session.client)
        except Exception as e:
            logger.error(f"Failed to refresh tools for '{name}': {e}")
            return [tool.model_copy() for tool in session.info.tools]

        session.info.tools = tools
        logger.info(f"Refreshed tools for '{name}': {len(tools)} tools")
        return [tool.model_copy() for tool in tools]

    # Notifications

    def _schedule(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _handle_tools_changed(self, name: str, generation: int) -> None:
        logger.info(f"Tools changed for MCP server '{name}'")
        async with self._lock(name):
            refreshed = await self._refresh_locked(name, generation)
        if refreshed is not None:
            self._emit(ToolsChangedEvent(server_name=name))

    async def _handle_list_changed(
        self, event: ResourcesChangedEvent | PromptsChangedEvent, generation: int
    ) -> None:
        logger.info(f"{event.type} for MCP server '{event.server_name}'")
        async with self._lock(event.server_name):
            session = self._sessions.get(event.server_name)
            current = session is not None and session.generation == generation
        if current:
            self._emit(event)

    async def wait_idle(self) -> None:
        """Wait until scheduled notification work has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # Queries

    def get_servers(self) -> list[McpServerInfo]:
        return [session.info.model_copy(deep=True) for session in self._sessions.values()]

    def get_server(self, name: str) -> McpServerInfo | None:
        session = self._sessions.get(name)
        return session.info.model_copy(deep=True) if session else None

    def get_status(self, name: str) -> ServerStatus:
        session = self._sessions.get(name)
        return session.info.status if session else "disconnected"

    def get_all_tools(self) -> list[McpToolInfo]:
        """All tools from servers that are currently connected."""
        tools: list[McpToolInfo] = []
        for session in self._sessions.values():
            if session.info.status == "connected":
                tools.extend(tool.model_copy() for tool in session.info.tools)
        return tools

    async def call_tool(
        self, server_name: str, tool_name: str, args: dict[str, Any]
    ) -> mcp.types.CallToolResult:
        """Call a tool and return the raw result.

        Raises:
            ServerNotConnectedError: If there is no live client for ``server_name``.
        """
        session = self._sessions.get(server_name)
        if session is None or session.client is None:
            raise ServerNotConnectedError(f"MCP server '{server_name}' is not connected")

        logger.debug(f"Calling tool '{tool_name}' on '{server_name}'")
        return await session.client.call_tool_mcp(tool_name, args)


_default_manager: McpClientManager | None = None


def get_default_manager(config_path: str | Path | None = None) -> McpClientManager:
    """Return the shared manager, creating it on first use."""
    global _default_manager

    if _default_manager is None:
        _default_manager = McpClientManager(config_path)
    return _default_manager


async def reset_default_manager() -> None:
    """Disconnect and discard the shared manager."""
    global _default_manager

    if _default_manager is not None:
        manager = _default_manager
        _default_manager = None
        await manager.disconnect_all()
