"""Construction of fastmcp client transports from server configs."""

import os

from fastmcp.client.transports import (
    ClientTransport,
    SSETransport,
    StdioTransport,
    StreamableHttpTransport,
)
from pydantic import AnyHttpUrl, TypeAdapter

from mcp_hub.logging import get_logger
from mcp_hub.models.mcp_server_config import (
    HttpServerConfig,
    McpServerConfig,
    SseServerConfig,
    StdioServerConfig,
)
from mcp_hub.paths import get_augmented_path, resolve_executable_path

logger = get_logger("transport")

_http_url = TypeAdapter(AnyHttpUrl)


class UnknownTransportError(ValueError):
    """Raised when a server config does not match any supported transport."""

    pass


def build_stdio_env(config: StdioServerConfig) -> dict[str, str]:
    """Inherited environment, then the augmented PATH, then the config's own env."""
    env = dict(os.environ)
    env["PATH"] = get_augmented_path()
    if config.env:
        env.update(config.env)
    return env


def _remote_url(name: str, url: str) -> str:
    try:
        _http_url.validate_python(url)
    except ValueError as e:
        raise ValueError(f"Invalid URL for server '{name}': {url}") from e
    return url


def build_transport(name: str, config: McpServerConfig) -> ClientTransport:
    """Create the transport for one server.

    Raises:
        UnknownTransportError: If ``config`` is not a supported server config.
        ValueError: If a remote server URL is not a valid HTTP(S) URL.
    """
    if isinstance(config, StdioServerConfig):
        command = resolve_executable_path(config.command)
        logger.debug(f"Building stdio transport for '{name}': {command}")
        return StdioTransport(
            command=command,
            args=list(config.args or []),
            env=build_stdio_env(config),
            cwd=config.cwd,
        )

    if isinstance(config, HttpServerConfig):
        logger.debug(f"Building streamable HTTP transport for '{name}': {config.url}")
        return StreamableHttpTransport(
            url=_remote_url(name, config.url),
            headers=config.headers or None,
        )

    if isinstance(config, SseServerConfig):
        logger.debug(f"Building legacy SSE transport for '{name}': {config.url}")
        return SSETransport(
            url=_remote_url(name, config.url),
            headers=config.headers or None,
        )

    transport_type = getattr(config, "type", type(config).__name__)
    raise UnknownTransportError(
        f"Unknown transport type for server '{name}': {transport_type}"
    )
