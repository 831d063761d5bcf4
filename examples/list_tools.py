"""
Example: connect to every configured server and call one tool.

Reads the registry from MCP_HUB_CONFIG (or ~/.mcp-hub/config/mcp.json),
prints the tools each server exposes, then calls TOOL_NAME if it is set.
"""

import asyncio
import json
import os

from dotenv import load_dotenv

from mcp_hub.client import McpClientManager
from mcp_hub.logging import configure_logging
from mcp_hub.tools import wrap_all

load_dotenv()
configure_logging()

TOOL_NAME = os.getenv("TOOL_NAME")
TOOL_ARGS = json.loads(os.getenv("TOOL_ARGS", "{}"))


async def main():
    manager = McpClientManager()
    manager.add_event_listener(lambda event: print(f"[event] {event.type}: {event.server_name}"))

    async with manager:
        for server in manager.get_servers():
            print(f"{server.name}: {server.status}")
            if server.error:
                print(f"  error: {server.error}")

        tools = wrap_all(manager)
        for name, tool in tools.items():
            print(f"\n{name}: {tool.description}")
            print(tool.parameters)

        if TOOL_NAME:
            if TOOL_NAME not in tools:
                print(f"\nTool '{TOOL_NAME}' not found")
                return
            print(f"\nCalling {TOOL_NAME}({TOOL_ARGS})")
            print(await tools[TOOL_NAME].execute(TOOL_ARGS))


if __name__ == "__main__":
    asyncio.run(main())
