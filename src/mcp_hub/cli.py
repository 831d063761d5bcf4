import asyncio
import gc
import warnings
from pathlib import Path
from typing import Any

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from mcp_hub.bundle import (
    BundleError,
    coerce_user_config_values,
    install_bundle_from_extracted,
    load_manifest,
)
from mcp_hub.client import McpClientManager
from mcp_hub.config import add_server, get_default_config_path, load_config, remove_server
from mcp_hub.logging import configure_logging
from mcp_hub.models.mcp_server_config import (
    HttpServerConfig,
    SseServerConfig,
    StdioServerConfig,
)
from mcp_hub.models.server_info import McpServerInfo
from mcp_hub.tools import tool_id

app = typer.Typer()
console = Console()

ConfigOption = typer.Option(None, "--config", "-c", help="Path to the MCP config file")


@app.callback()
def main(
    log_level: str | None = typer.Option(
        None, "--log-level", help="Log level, defaults to $LOG_LEVEL or WARNING"
    ),
) -> None:
    """
    Manage and inspect MCP server connections.
    """
    load_dotenv()
    configure_logging(log_level)


def _parse_pairs(pairs: list[str] | None, label: str) -> dict[str, str] | None:
    """Parse repeated KEY=VALUE options."""
    if not pairs:
        return None

    parsed: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected KEY=VALUE, got '{pair}'", param_hint=label)
        parsed[key] = value
    return parsed


@app.command()
def servers(config: Path | None = ConfigOption) -> None:
    """
    Return a table of all configured servers
    """
    registry = load_config(config)
    table = Table("Name", "Type", "Command / Url", "Disabled")

    for name, server in registry.mcp_servers.items():
        if isinstance(server, StdioServerConfig):
            path = " ".join([server.command, *(server.args or [])])
        else:
            path = server.url

        table.add_row(name, server.type, path, "yes" if server.disabled else "")

    console.print(table)


@app.command()
def tools(config: Path | None = ConfigOption) -> None:
    """
    Connect to every server and list the tools they expose
    """
    manager = McpClientManager(config)
    results = run_async_with_cleanup(connect_and_cleanup(manager))

    table = Table("Tool", "Server", "Status", "Description")
    for info in results:
        if info.status != "connected":
            table.add_row("", info.name, f"[red]{info.status}[/red]", info.error or "")
            continue
        for tool in info.tools:
            table.add_row(
                tool_id(info.name, tool.name), info.name, "connected", tool.description or ""
            )

    console.print(table)


def run_async_with_cleanup(coro: Any) -> Any:
    """Run a coroutine that may have spawned stdio servers.

    Stdio subprocess transports can be finalized after the loop has closed,
    which only produces an "Event loop is closed" warning; that warning is
    ignored and a gc pass collects the leftover transports.
    """
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", message="Event loop is closed")
        try:
            return asyncio.run(coro)
        finally:
            gc.collect()


async def connect_and_cleanup(manager: McpClientManager) -> list[McpServerInfo]:
    """Connect to all servers, then disconnect before returning their state."""
    try:
        return await manager.connect_all()
    finally:
        await manager.disconnect_all()
        # Give transports time to close cleanly
        await asyncio.sleep(0.1)


@app.command()
def add(
    name: str,
    command: str | None = typer.Option(None, help="Command for a stdio server"),
    arg: list[str] | None = typer.Option(None, "--arg", help="Argument, repeatable"),
    env: list[str] | None = typer.Option(None, "--env", help="KEY=VALUE, repeatable"),
    cwd: str | None = typer.Option(None, help="Working directory for a stdio server"),
    url: str | None = typer.Option(None, help="URL of a remote server"),
    header: list[str] | None = typer.Option(None, "--header", help="KEY=VALUE, repeatable"),
    transport: str = typer.Option("http", help="Remote transport: http or sse"),
    disabled: bool = typer.Option(False, help="Register without connecting automatically"),
    config: Path | None = ConfigOption,
) -> None:
    """
    Add or replace a server in the config
    """
    if bool(command) == bool(url):
        raise typer.BadParameter("Pass exactly one of --command or --url")

    try:
        server: StdioServerConfig | HttpServerConfig | SseServerConfig
        if command:
            server = StdioServerConfig(
                command=command,
                args=arg or None,
                env=_parse_pairs(env, "--env"),
                cwd=cwd,
                disabled=disabled or None,
            )
        elif transport == "sse":
            server = SseServerConfig(
                type="sse", url=url, headers=_parse_pairs(header, "--header"), disabled=disabled or None
            )
        elif transport == "http":
            server = HttpServerConfig(
                type="http", url=url, headers=_parse_pairs(header, "--header"), disabled=disabled or None
            )
        else:
            raise typer.BadParameter(f"Unknown transport '{transport}'", param_hint="--transport")
    except ValidationError as e:
        console.print(f"[red]Invalid server config: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    add_server(name, server, config)
    console.print(f"[green]Saved server '{name}' to {config or get_default_config_path()}[/green]")


@app.command()
def remove(name: str, config: Path | None = ConfigOption) -> None:
    """
    Remove a server from the config
    """
    registry = load_config(config)
    if name not in registry.mcp_servers:
        console.print(f"[red]Server '{name}' not found in config[/red]")
        raise typer.Exit(code=1)

    remove_server(name, config)
    console.print(f"[green]Removed server '{name}'[/green]")


@app.command("install-bundle")
def install_bundle(
    path: Path,
    set_value: list[str] | None = typer.Option(
        None, "--set", help="User config value as KEY=VALUE, repeatable"
    ),
    config: Path | None = ConfigOption,
) -> None:
    """
    Register an extracted MCPB bundle as a server
    """
    raw_values = _parse_pairs(set_value, "--set") or {}
    try:
        manifest = load_manifest(path)
        user_config = coerce_user_config_values(manifest.user_config or {}, raw_values)
        installed = install_bundle_from_extracted(path, user_config, config)
    except BundleError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]Installed bundle '{installed.name}'[/green]")


if __name__ == "__main__":
    app()
