"""MCP server connection configuration models.

Three transports are supported: a local process speaking over stdio, a remote
server using Streamable HTTP, and a remote server using the legacy SSE
transport. Entries without an explicit ``type`` but with a ``command`` are
treated as stdio servers, which keeps Claude Desktop style configs loadable.
"""

from typing import Annotated, Any, Literal

from pydantic import AfterValidator, AnyUrl, BaseModel, Discriminator, Tag, TypeAdapter

_url_adapter = TypeAdapter(AnyUrl)


def _validate_url(value: str) -> str:
    _url_adapter.validate_python(value)
    return value


Url = Annotated[str, AfterValidator(_validate_url)]


class StdioServerConfig(BaseModel):
    """Configuration for a local MCP server launched as a child process.

    Attributes:
        type: Always ``"stdio"``.
        command: The command to run (e.g. ``"npx"``).
        args: Command-line arguments passed to the server process.
        env: Environment variables for the server process. These take
            precedence over the inherited environment.
        cwd: Working directory for the server process.
        disabled: When True the server is recorded but never connected
            automatically.
    """

    type: Literal["stdio"] = "stdio"
    command: str
    args: list[str] | None = None
    env: dict[str, str] | None = None
    cwd: str | None = None
    disabled: bool | None = None


class HttpServerConfig(BaseModel):
    """Configuration for a remote MCP server using Streamable HTTP.

    Attributes:
        type: Always ``"http"``.
        url: The server URL.
        headers: HTTP headers sent with every request (e.g. ``Authorization``).
        disabled: When True the server is never connected automatically.
    """

    type: Literal["http"]
    url: Url
    headers: dict[str, str] | None = None
    disabled: bool | None = None


class SseServerConfig(BaseModel):
    """Configuration for a remote MCP server using the legacy SSE transport.

    Deprecated by the protocol in favour of Streamable HTTP and kept only so
    older servers remain reachable. Prefer :class:`HttpServerConfig`.
    """

    type: Literal["sse"]
    url: Url
    headers: dict[str, str] | None = None
    disabled: bool | None = None


def _server_type(value: Any) -> str | None:
    if isinstance(value, BaseModel):
        return getattr(value, "type", None)
    if isinstance(value, dict):
        explicit = value.get("type")
        if explicit:
            return explicit
        if "command" in value:
            return "stdio"
    return None


McpServerConfig = Annotated[
    Annotated[StdioServerConfig, Tag("stdio")]
    | Annotated[HttpServerConfig, Tag("http")]
    | Annotated[SseServerConfig, Tag("sse")],
    Discriminator(_server_type),
]

server_config_adapter: TypeAdapter[
    StdioServerConfig | HttpServerConfig | SseServerConfig
] = TypeAdapter(McpServerConfig)
