"""Tests for McpClientManager lifecycle, events and notifications."""

import asyncio
import json

import mcp
import pytest
from conftest import make_tool, text_result

from mcp_hub.client import (
    McpClientManager,
    ServerNotConnectedError,
    get_default_manager,
    reset_default_manager,
)
from mcp_hub.models.mcp_server_config import HttpServerConfig, StdioServerConfig
from mcp_hub.transport import UnknownTransportError

TOOLS_CHANGED = mcp.types.ToolListChangedNotification(method="notifications/tools/list_changed")
RESOURCES_CHANGED = mcp.types.ResourceListChangedNotification(
    method="notifications/resources/list_changed"
)
PROMPTS_CHANGED = mcp.types.PromptListChangedNotification(
    method="notifications/prompts/list_changed"
)


def write_registry(path, servers):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"mcpServers": servers}))


class TestConnect:
    async def test_full_lifecycle(self, manager, fake_servers, events):
        fake_servers.add("s1", [make_tool("read_file"), make_tool("write_file")])
        config = StdioServerConfig(command="npx", args=["-y", "server-test"])

        info = await manager.connect("s1", config)

        assert info.name == "s1"
        assert info.status == "connected"
        assert len(info.tools) == 2
        assert info.tools[0].server_name == "s1"
        assert info.error is None

        await manager.disconnect("s1")

        server = manager.get_server("s1")
        assert server.status == "disconnected"
        assert server.tools == []
        assert [event.type for event in events] == ["server_connected", "server_disconnected"]
        assert all(event.server_name == "s1" for event in events)

    async def test_connect_records_tool_details(self, manager, fake_servers):
        schema = {"type": "object", "properties": {"path": {"type": "string"}}}
        fake_servers.add("fs", [make_tool("read_file", "Read a file", schema)])

        info = await manager.connect("fs", StdioServerConfig(command="npx"))

        tool = info.tools[0]
        assert tool.name == "read_file"
        assert tool.description == "Read a file"
        assert tool.input_schema == schema

    async def test_connect_http_server(self, manager, fake_servers):
        fake_servers.add("remote", [make_tool("search")])

        info = await manager.connect(
            "remote", HttpServerConfig(type="http", url="https://example.com/mcp")
        )

        assert info.status == "connected"
        assert fake_servers.transport_calls == ["remote"]

    async def test_connect_expands_env_vars(self, manager, fake_servers, monkeypatch):
        monkeypatch.setenv("API_TOKEN", "secret")
        fake_servers.add("s1")
        config = StdioServerConfig(command="npx", env={"TOKEN": "${API_TOKEN}"})

        info = await manager.connect("s1", config)

        assert fake_servers.transports["s1"].config.env == {"TOKEN": "secret"}
        assert info.config.env == {"TOKEN": "secret"}

    async def test_handler_installed_before_handshake(self, manager, fake_servers):
        client = fake_servers.add("s1")

        await manager.connect("s1", StdioServerConfig(command="npx"))

        assert client.message_handler is not None
        assert client.enter_count == 1

    async def test_reconnect_replaces_session(self, manager, fake_servers, events):
        client = fake_servers.add("s1", [make_tool("t1")])

        await manager.connect("s1", StdioServerConfig(command="npx", args=["a"]))
        info = await manager.connect("s1", StdioServerConfig(command="uvx", args=["b"]))

        assert info.status == "connected"
        assert info.config.command == "uvx"
        assert len(manager.get_servers()) == 1
        assert fake_servers.transports["s1"].config.command == "uvx"
        assert client.connected
        assert [event.type for event in events] == [
            "server_connected",
            "server_disconnected",
            "server_connected",
        ]

    async def test_connect_failure_is_captured(self, manager, fake_servers, events):
        client = fake_servers.add("s1")
        client.connect_error = ConnectionError("handshake failed")

        info = await manager.connect("s1", StdioServerConfig(command="npx"))

        assert info.status == "error"
        assert info.error == "handshake failed"
        assert info.tools == []
        assert events[-1].type == "server_error"
        assert events[-1].error == "handshake failed"
        fake_servers.transports["s1"].close.assert_awaited_once()

    async def test_list_failure_closes_client(self, manager, fake_servers):
        client = fake_servers.add("s1")
        client.list_error = RuntimeError("tools/list failed")

        info = await manager.connect("s1", StdioServerConfig(command="npx"))

        assert info.status == "error"
        assert "tools/list failed" in info.error
        assert not client.connected
        with pytest.raises(ServerNotConnectedError):
            await manager.call_tool("s1", "anything", {})

    async def test_unknown_transport_is_captured(self, manager, fake_servers):
        fake_servers.transport_errors["s1"] = UnknownTransportError(
            "Unknown transport type for server 's1': carrier-pigeon"
        )

        info = await manager.connect("s1", StdioServerConfig(command="npx"))

        assert info.status == "error"
        assert "Unknown transport type" in info.error

    async def test_returned_info_is_a_copy(self, manager, fake_servers):
        fake_servers.add("s1", [make_tool("t1")])

        info = await manager.connect("s1", StdioServerConfig(command="npx"))
        info.tools.clear()
        info.status = "error"

        assert manager.get_status("s1") == "connected"
        assert len(manager.get_all_tools()) == 1


class TestDisconnect:
    async def test_disconnect_unknown_server_is_noop(self, manager, events):
        await manager.disconnect("never-connected")

        assert manager.get_status("never-connected") == "disconnected"
        assert events == []

    async def test_disconnect_twice(self, manager, fake_servers, events):
        fake_servers.add("s1", [make_tool("t1")])
        await manager.connect("s1", StdioServerConfig(command="npx"))

        await manager.disconnect("s1")
        await manager.disconnect("s1")

        assert manager.get_status("s1") == "disconnected"
        assert [event.type for event in events].count("server_disconnected") == 1

    async def test_disconnect_failed_session_emits_nothing(self, manager, fake_servers, events):
        fake_servers.add("s1").connect_error = ConnectionError("boom")
        await manager.connect("s1", StdioServerConfig(command="npx"))
        events.clear()

        await manager.disconnect("s1")

        assert manager.get_status("s1") == "disconnected"
        assert manager.get_server("s1").error is None
        assert events == []

    async def test_close_errors_are_swallowed(self, manager, fake_servers, events):
        client = fake_servers.add("s1", [make_tool("t1")])
        await manager.connect("s1", StdioServerConfig(command="npx"))
        client.close_error = RuntimeError("client close failed")
        fake_servers.transports["s1"].close.side_effect = RuntimeError("transport close failed")

        await manager.disconnect("s1")

        assert manager.get_status("s1") == "disconnected"
        assert manager.get_server("s1").tools == []
        assert events[-1].type == "server_disconnected"

    async def test_disconnect_all(self, manager, fake_servers):
        fake_servers.add("a", [make_tool("t1")])
        fake_servers.add("b", [make_tool("t2")])
        await manager.connect("a", StdioServerConfig(command="npx"))
        await manager.connect("b", StdioServerConfig(command="npx"))
        fake_servers.transports["a"].close.side_effect = RuntimeError("stuck")

        await manager.disconnect_all()

        assert manager.get_status("a") == "disconnected"
        assert manager.get_status("b") == "disconnected"
        assert manager.get_all_tools() == []


class TestConnectAll:
    async def test_disabled_servers_are_not_connected(self, manager, fake_servers, config_path, events):
        write_registry(
            config_path,
            {
                "active": {"command": "npx"},
                "paused": {"command": "npx", "disabled": True},
            },
        )
        fake_servers.add("active", [make_tool("t1")])

        results = await manager.connect_all()

        assert [(info.name, info.status) for info in results] == [
            ("active", "connected"),
            ("paused", "disconnected"),
        ]
        assert results[1].tools == []
        assert results[1].error is None
        assert fake_servers.transport_calls == ["active"]
        assert not any(event.type == "server_error" for event in events)

    async def test_one_failure_does_not_stop_others(self, manager, fake_servers, config_path):
        write_registry(config_path, {"first": {"command": "npx"}, "second": {"command": "npx"}})
        fake_servers.add("first", [make_tool("t1")])
        fake_servers.transport_errors["second"] = OSError("spawn failed")

        results = await manager.connect_all()

        assert len(results) == 2
        assert results[0].status == "connected"
        assert results[1].status == "error"
        assert results[1].error

    async def test_missing_registry_connects_nothing(self, manager):
        assert await manager.connect_all() == []

    async def test_undecodable_registry_connects_nothing(self, manager, fake_servers, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_bytes(b'{"mcpServers": {"\xff\xfe": {"command": "npx"}}}')

        assert await manager.connect_all() == []
        assert fake_servers.transport_calls == []

    async def test_reload_picks_up_config_changes(self, manager, fake_servers, config_path):
        write_registry(config_path, {"s1": {"command": "npx"}})
        fake_servers.add("s1", [make_tool("t1")])
        fake_servers.add("s2", [make_tool("t2")])
        await manager.connect_all()

        write_registry(config_path, {"s1": {"command": "npx", "disabled": True}, "s2": {"command": "npx"}})
        results = await manager.reload()

        assert {info.name: info.status for info in results} == {
            "s1": "disconnected",
            "s2": "connected",
        }
        assert [tool.name for tool in manager.get_all_tools()] == ["t2"]

    async def test_async_context_manager(self, manager, fake_servers, config_path):
        write_registry(config_path, {"s1": {"command": "npx"}})
        fake_servers.add("s1", [make_tool("t1")])

        async with manager:
            assert manager.get_status("s1") == "connected"

        assert manager.get_status("s1") == "disconnected"


class TestRefreshTools:
    async def test_refresh_replaces_tools(self, manager, fake_servers):
        client = fake_servers.add("s1", [make_tool("t1")])
        await manager.connect("s1", StdioServerConfig(command="npx"))
        client.tools = [make_tool("t1"), make_tool("t2")]

        tools = await manager.refresh_tools("s1")

        assert [tool.name for tool in tools] == ["t1", "t2"]
        assert len(manager.get_server("s1").tools) == 2

    async def test_refresh_failure_keeps_previous_tools(self, manager, fake_servers):
        client = fake_servers.add("s1", [make_tool("t1")])
        await manager.connect("s1", StdioServerConfig(command="npx"))
        client.list_error = RuntimeError("server busy")

        tools = await manager.refresh_tools("s1")

        assert [tool.name for tool in tools] == ["t1"]
        assert manager.get_status("s1") == "connected"

    async def test_refresh_unknown_server(self, manager):
        assert await manager.refresh_tools("ghost") == []

    async def test_refresh_disconnected_server_is_noop(self, manager, fake_servers):
        client = fake_servers.add("s1", [make_tool("t1")])
        await manager.connect("s1", StdioServerConfig(command="npx"))
        await manager.disconnect("s1")
        calls = client.list_calls

        assert await manager.refresh_tools("s1") == []
        assert client.list_calls == calls


class TestNotifications:
    async def test_tools_changed_refreshes(self, manager, fake_servers, events):
        client = fake_servers.add("s1", [make_tool("t1")])
        await manager.connect("s1", StdioServerConfig(command="npx"))
        client.tools = [make_tool("t1"), make_tool("t2")]

        await fake_servers.handlers["s1"].on_tool_list_changed(TOOLS_CHANGED)
        await manager.wait_idle()

        assert sorted(tool.name for tool in manager.get_all_tools()) == ["t1", "t2"]
        assert events[-1].type == "tools_changed"
        assert events[-1].server_name == "s1"

    async def test_resource_and_prompt_changes_emit_events(self, manager, fake_servers, events):
        fake_servers.add("s1")
        await manager.connect("s1", StdioServerConfig(command="npx"))
        handler = fake_servers.handlers["s1"]

        await handler.on_resource_list_changed(RESOURCES_CHANGED)
        await handler.on_prompt_list_changed(PROMPTS_CHANGED)
        await manager.wait_idle()

        assert [event.type for event in events][-2:] == ["resources_changed", "prompts_changed"]

    async def test_notification_after_disconnect_is_dropped(self, manager, fake_servers, events):
        client = fake_servers.add("s1", [make_tool("t1")])
        await manager.connect("s1", StdioServerConfig(command="npx"))
        stale_handler = fake_servers.handlers["s1"]
        await manager.disconnect("s1")
        calls = client.list_calls

        await stale_handler.on_tool_list_changed(TOOLS_CHANGED)
        await manager.wait_idle()

        assert client.list_calls == calls
        assert manager.get_server("s1").tools == []
        assert not any(event.type == "tools_changed" for event in events)

    async def test_stale_notification_does_not_touch_new_session(self, manager, fake_servers, events):
        client = fake_servers.add("s1", [make_tool("t1")])
        await manager.connect("s1", StdioServerConfig(command="npx"))
        stale_handler = fake_servers.handlers["s1"]
        await manager.connect("s1", StdioServerConfig(command="npx"))
        client.tools = [make_tool("other")]

        await stale_handler.on_tool_list_changed(TOOLS_CHANGED)
        await manager.wait_idle()

        assert [tool.name for tool in manager.get_all_tools()] == ["t1"]
        assert not any(event.type == "tools_changed" for event in events)

    async def test_notification_waits_for_disconnect(self, manager, fake_servers, events):
        client = fake_servers.add("s1", [make_tool("t1")])
        await manager.connect("s1", StdioServerConfig(command="npx"))
        client.tools = [make_tool("t1"), make_tool("t2")]

        await fake_servers.handlers["s1"].on_tool_list_changed(TOOLS_CHANGED)
        await asyncio.gather(manager.disconnect("s1"), manager.wait_idle())

        assert manager.get_status("s1") == "disconnected"
        assert manager.get_server("s1").tools == []


class TestEvents:
    async def test_failing_listener_does_not_block_others(self, manager, fake_servers):
        received = []

        def broken(event):
            raise RuntimeError("listener bug")

        manager.add_event_listener(broken)
        manager.add_event_listener(received.append)
        fake_servers.add("s1")

        info = await manager.connect("s1", StdioServerConfig(command="npx"))

        assert info.status == "connected"
        assert [event.type for event in received] == ["server_connected"]

    async def test_unsubscribe(self, manager, fake_servers):
        received = []
        unsubscribe = manager.add_event_listener(received.append)
        unsubscribe()
        unsubscribe()
        fake_servers.add("s1")

        await manager.connect("s1", StdioServerConfig(command="npx"))

        assert received == []

    async def test_listener_may_unsubscribe_during_delivery(self, manager, fake_servers):
        received = []
        unsubscribe = None

        def once(event):
            received.append(event)
            unsubscribe()

        unsubscribe = manager.add_event_listener(once)
        second = []
        manager.add_event_listener(second.append)
        fake_servers.add("s1")

        await manager.connect("s1", StdioServerConfig(command="npx"))
        await manager.disconnect("s1")

        assert len(received) == 1
        assert len(second) == 2


class TestQueriesAndCalls:
    async def test_get_all_tools_only_connected(self, manager, fake_servers):
        fake_servers.add("up", [make_tool("t1")])
        fake_servers.add("down").connect_error = ConnectionError("nope")
        await manager.connect("up", StdioServerConfig(command="npx"))
        await manager.connect("down", StdioServerConfig(command="npx"))

        assert [tool.server_name for tool in manager.get_all_tools()] == ["up"]
        assert manager.get_status("down") == "error"
        assert manager.get_status("unknown") == "disconnected"
        assert manager.get_server("unknown") is None
        assert [info.name for info in manager.get_servers()] == ["up", "down"]

    async def test_call_tool_returns_raw_result(self, manager, fake_servers):
        client = fake_servers.add("s1", [make_tool("echo")])
        client.call_tool_mcp.return_value = text_result("hello")
        await manager.connect("s1", StdioServerConfig(command="npx"))

        result = await manager.call_tool("s1", "echo", {"text": "hello"})

        assert result.content[0].text == "hello"
        client.call_tool_mcp.assert_awaited_once_with("echo", {"text": "hello"})

    async def test_call_tool_on_absent_server(self, manager):
        with pytest.raises(ServerNotConnectedError, match="is not connected"):
            await manager.call_tool("ghost", "x", {})

    async def test_call_tool_errors_propagate(self, manager, fake_servers):
        client = fake_servers.add("s1", [make_tool("echo")])
        client.call_tool_mcp.side_effect = TimeoutError("request timed out")
        await manager.connect("s1", StdioServerConfig(command="npx"))

        with pytest.raises(TimeoutError):
            await manager.call_tool("s1", "echo", {})


class TestDefaultManager:
    async def test_default_manager_is_shared(self, config_path):
        await reset_default_manager()
        try:
            first = get_default_manager(config_path)
            assert get_default_manager() is first
            assert isinstance(first, McpClientManager)
        finally:
            await reset_default_manager()

    async def test_reset_creates_new_manager(self):
        first = get_default_manager()
        await reset_default_manager()

        assert get_default_manager() is not first
        await reset_default_manager()
