"""MCPB bundle manifest models.

MCP Bundles are archives holding a server plus a ``manifest.json`` describing
how to launch it. Only the manifest is modelled here; extraction happens
elsewhere.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

BundlePlatform = Literal["darwin", "win32", "linux"]


class Author(BaseModel):
    name: str
    email: str | None = None
    url: str | None = None


class Repository(BaseModel):
    type: str | None = None
    url: str


class UserConfigField(BaseModel):
    """A value the user supplies at install time."""

    type: Literal["string", "number", "boolean", "directory", "file"]
    title: str
    description: str | None = None
    required: bool | None = None
    default: str | int | float | bool | list[str] | None = None
    multiple: bool | None = None
    sensitive: bool | None = None
    min: float | None = None
    max: float | None = None


class PlatformOverride(BaseModel):
    command: str | None = None
    args: list[str] | None = None
    env: dict[str, str] | None = None


class ManifestMcpConfig(BaseModel):
    command: str
    args: list[str] | None = None
    env: dict[str, str] | None = None
    platform_overrides: dict[str, PlatformOverride] | None = None


class ManifestServer(BaseModel):
    type: Literal["node", "python", "binary", "uv"]
    entry_point: str
    mcp_config: ManifestMcpConfig | None = None


class ManifestTool(BaseModel):
    name: str
    description: str | None = None


class ManifestPrompt(BaseModel):
    name: str
    description: str | None = None
    arguments: list[str] | None = None
    text: str | None = None


class Runtimes(BaseModel):
    python: str | None = None
    node: str | None = None


class Compatibility(BaseModel):
    # Other client version constraints are kept as-is
    model_config = ConfigDict(extra="allow")

    claude_desktop: str | None = None
    platforms: list[BundlePlatform] | None = None
    runtimes: Runtimes | None = None


class Icon(BaseModel):
    src: str
    size: str | None = None
    theme: str | None = None


class McpbManifest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    manifest_version: str
    name: str
    version: str
    description: str
    author: Author
    server: ManifestServer

    display_name: str | None = None
    long_description: str | None = None
    repository: Repository | None = None
    homepage: str | None = None
    documentation: str | None = None
    support: str | None = None
    icon: str | None = None
    icons: list[Icon] | None = None
    screenshots: list[str] | None = None
    tools: list[ManifestTool] | None = None
    tools_generated: bool | None = None
    prompts: list[ManifestPrompt] | None = None
    prompts_generated: bool | None = None
    keywords: list[str] | None = None
    license: str | None = None
    privacy_policies: list[str] | None = None
    compatibility: Compatibility | None = None
    user_config: dict[str, UserConfigField] | None = None
    meta: dict[str, Any] | None = Field(default=None, alias="_meta")


UserConfigValues = dict[str, str | int | float | bool | list[str]]
